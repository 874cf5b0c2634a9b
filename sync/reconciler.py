from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from chain.errors import RpcError, UnsupportedContract
from chain.rpc_gateway import ChainGateway
from config.settings import settings
from ledger.client import LedgerError
from ledger.publisher import PUBLISH_OK, PublishPipeline
from metadata.fetcher import FetchError, MetadataFetcher
from models.megadata import Collection, Module, Token
from models.schema import MODULE_ERC721, MODULE_EXTENDING_COLLECTION, MODULE_EXTENDING_METADATA
from ops.metrics import Timer
from repos.token_store import TokenStore
from utils.request_context import bind_run_id

log = logging.getLogger("megadata.sync.reconciler")


@dataclass(frozen=True)
class TokenSetDiff:
    missing: Set[str]
    removed: Set[str]


def diff_token_sets(external: Set[str], local: Set[str]) -> TokenSetDiff:
    return TokenSetDiff(missing=set(external) - set(local), removed=set(local) - set(external))


def _id_order(token_id: str):
    return (0, int(token_id), "") if token_id.isdigit() else (1, 0, token_id)


def token_modules_for(collection: Collection) -> List[str]:
    return [collection.contract_type or MODULE_ERC721, MODULE_EXTENDING_METADATA, MODULE_EXTENDING_COLLECTION]


class ExternalReconciler:
    """Mirrors external NFT contracts into the store and publishes what it creates.

    One pass per collection: enumerate the contract, diff against stored ids,
    fetch metadata for the missing ones, then create and publish them in
    fixed-size batches. Ids present locally but gone from the contract are
    reported, never deleted.
    """

    def __init__(
        self,
        store: Optional[TokenStore] = None,
        gateway: Optional[ChainGateway] = None,
        fetcher: Optional[MetadataFetcher] = None,
        publisher: Optional[PublishPipeline] = None,
        batch_size: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or TokenStore()
        self.gateway = gateway or ChainGateway()
        self.fetcher = fetcher or MetadataFetcher(gateway=self.gateway)
        self.publisher = publisher or PublishPipeline()
        self.batch_size = max(1, int(batch_size or settings.RECONCILE_TOKEN_BATCH_SIZE))
        self.clock = clock

    def reconcile_collection(self, collection: Collection) -> Dict[str, Any]:
        t = Timer()
        cid = collection.id
        out: Dict[str, Any] = {
            "collection_id": cid,
            "ok": True,
            "missing": 0,
            "removed": 0,
            "fetched": 0,
            "fetch_failed": 0,
            "created": 0,
            "published": 0,
            "failed_batches": 0,
            "inconsistent_batches": 0,
            "deferred": 0,
        }

        try:
            external = self.gateway.get_token_ids(
                collection.source or "", collection.contract_type or MODULE_ERC721, collection.external_id or ""
            )
        except (RpcError, UnsupportedContract) as e:
            log.error(
                "reconcile_enumeration_failed",
                extra={"extra": {"collection_id": cid, "error_type": type(e).__name__, "message": str(e)}},
            )
            out.update({"ok": False, "error": f"enumeration_failed: {e}"})
            return out

        on_ledger = self._ensure_on_ledger(collection)
        out["on_ledger"] = on_ledger

        local = set(self.store.list_token_ids(cid))
        diff = diff_token_sets(external, local)
        out["missing"] = len(diff.missing)
        out["removed"] = len(diff.removed)
        if diff.removed:
            log.warning(
                "reconcile_removed_detected",
                extra={"extra": {"collection_id": cid, "removed": len(diff.removed),
                                 "sample": sorted(diff.removed, key=_id_order)[:10]}},
            )
        if not diff.missing:
            log.info("reconcile_collection_in_sync", extra={"extra": {"collection_id": cid, "external": len(external)}})
            return out

        module_ids = token_modules_for(collection)
        modules: Optional[List[Module]] = None
        batch: List[Dict[str, Any]] = []

        for token_id in sorted(diff.missing, key=_id_order):
            try:
                metadata = self.fetcher.fetch_metadata(collection.source or "", collection.external_id or "", token_id)
            except (FetchError, RpcError, UnsupportedContract, ValueError) as e:
                out["fetch_failed"] += 1
                log.warning(
                    "reconcile_token_fetch_failed",
                    extra={"extra": {"collection_id": cid, "token_id": token_id,
                                     "error_type": type(e).__name__, "message": str(e)}},
                )
                continue
            out["fetched"] += 1
            batch.append({"id": token_id, "data": metadata, "modules": module_ids})
            if len(batch) >= self.batch_size:
                modules = self._process_batch(cid, batch, module_ids, modules, out, publish=on_ledger)
                batch = []

        if batch:
            self._process_batch(cid, batch, module_ids, modules, out, publish=on_ledger)

        log.info("reconcile_collection_result", extra={"extra": {**out, "duration_ms": t.ms()}})
        return out

    def _ensure_on_ledger(self, collection: Collection) -> bool:
        """Creates the collection on the ledger when an earlier attempt never landed."""
        if collection.published:
            return True
        try:
            self.publisher.ledger.create_collection(collection.account_id, collection.id, collection.name)
        except LedgerError as e:
            log.warning(
                "reconcile_collection_publish_failed",
                extra={"extra": {"collection_id": collection.id, "message": str(e)}},
            )
            return False
        self.store.set_collection_published(collection.id)
        collection.published = True
        log.info("reconcile_collection_published", extra={"extra": {"collection_id": collection.id}})
        return True

    def _process_batch(
        self,
        cid: int,
        batch: List[Dict[str, Any]],
        module_ids: List[str],
        modules: Optional[List[Module]],
        out: Dict[str, Any],
        publish: bool = True,
    ) -> Optional[List[Module]]:
        try:
            created: List[Token] = self.store.create_tokens(cid, batch)
            out["created"] += len(created)
            if not publish:
                # Stored as pending; the ledger sync worker sends them once the collection is on the ledger.
                out["deferred"] += len(created)
                return modules
            if modules is None:
                modules = self.store.get_modules(module_ids)
            outcome = self.publisher.publish_batch(cid, created, modules, on_published=self.store.mark_published)
        except Exception as e:
            out["failed_batches"] += 1
            log.error(
                "reconcile_batch_failed",
                extra={"extra": {"collection_id": cid, "tokens": len(batch),
                                 "error_type": type(e).__name__, "message": str(e)}},
                exc_info=True,
            )
            return modules

        if outcome.status == PUBLISH_OK:
            out["published"] += outcome.published
        elif outcome.ledger_written:
            out["inconsistent_batches"] += 1
        else:
            out["failed_batches"] += 1
        return modules

    def run(self) -> Dict[str, Any]:
        run_id = str(uuid.uuid4())
        with bind_run_id(run_id):
            return self._run(run_id)

    def _run(self, run_id: str) -> Dict[str, Any]:
        t = Timer()
        threshold = int(self.clock()) - settings.RECONCILE_CHECK_AGE_SECONDS
        collections = self.store.list_collections_needing_check(threshold, settings.RECONCILE_COLLECTION_LIMIT)
        if not collections:
            log.info("reconcile_nothing_due", extra={"extra": {"run_id": run_id}})
            return {"ok": True, "run_id": run_id, "collections": 0, "results": []}

        results: List[Dict[str, Any]] = []
        for collection in collections:
            try:
                result = self.reconcile_collection(collection)
            except Exception as e:
                result = {"collection_id": collection.id, "ok": False, "error": f"{type(e).__name__}: {e}"}
                log.error(
                    "reconcile_collection_exception",
                    extra={"extra": {"run_id": run_id, "collection_id": collection.id, "error_type": type(e).__name__}},
                    exc_info=True,
                )
            results.append(result)

            # Checked regardless of outcome, so a failing contract is not hammered every tick.
            try:
                self.store.update_last_checked(collection.id, int(self.clock()))
            except Exception as e:
                log.error(
                    "reconcile_last_checked_update_failed",
                    extra={"extra": {"run_id": run_id, "collection_id": collection.id, "message": str(e)}},
                )

        summary = {
            "ok": True,
            "run_id": run_id,
            "collections": len(collections),
            "collections_failed": sum(1 for r in results if not r.get("ok")),
            "created": sum(int(r.get("created", 0)) for r in results),
            "published": sum(int(r.get("published", 0)) for r in results),
            "results": results,
        }
        log.info(
            "reconcile_run_metrics",
            extra={"extra": {k: v for k, v in summary.items() if k != "results"} | {"duration_ms": t.ms()}},
        )
        return summary
