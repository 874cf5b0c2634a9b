from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from config.settings import settings
from ledger.publisher import PUBLISH_OK, PublishPipeline
from models.megadata import Token
from ops.metrics import Timer
from repos.token_store import TokenStore
from utils.request_context import bind_run_id

log = logging.getLogger("megadata.sync.ledger_sync")

SKIPPED = "skipped"


def union_module_ids(tokens: List[Token]) -> List[str]:
    seen: List[str] = []
    for t in tokens:
        for m in t.modules:
            if m not in seen:
                seen.append(m)
    return seen


class LedgerSyncWorker:
    """Pushes locally edited (pending) tokens to the ledger, one batch per collection per run."""

    def __init__(
        self,
        store: Optional[TokenStore] = None,
        publisher: Optional[PublishPipeline] = None,
        batch_size: Optional[int] = None,
        collection_limit: Optional[int] = None,
    ):
        self.store = store or TokenStore()
        self.publisher = publisher or PublishPipeline()
        self.batch_size = max(1, int(batch_size or settings.LEDGER_SYNC_BATCH_SIZE))
        self.collection_limit = max(1, int(collection_limit or settings.LEDGER_SYNC_COLLECTION_LIMIT))

    def sync_collection(self, collection_id: int) -> Dict[str, Any]:
        collection = self.store.get_collection(collection_id)
        if collection is None or not collection.published:
            # Items need their collection on the ledger first; publish_collection sends both.
            log.info("ledger_sync_collection_unpublished", extra={"extra": {"collection_id": collection_id}})
            return {"collection_id": collection_id, "status": SKIPPED, "published": 0}
        batch = self.store.list_pending_sync(collection_id, self.batch_size)
        if not batch:
            return {"collection_id": collection_id, "status": PUBLISH_OK, "published": 0}
        modules = self.store.get_modules(union_module_ids(batch))
        outcome = self.publisher.publish_batch(collection_id, batch, modules, on_published=self.store.mark_sync_done)
        return outcome.to_dict()

    def run(self) -> Dict[str, Any]:
        run_id = str(uuid.uuid4())
        with bind_run_id(run_id):
            return self._run(run_id)

    def _run(self, run_id: str) -> Dict[str, Any]:
        t = Timer()
        collection_ids = self.store.list_pending_collection_ids(self.collection_limit)
        if not collection_ids:
            log.info("ledger_sync_nothing_pending", extra={"extra": {"run_id": run_id}})
            return {"ok": True, "run_id": run_id, "collections": 0, "synced": 0, "results": []}

        results: List[Dict[str, Any]] = []
        for collection_id in collection_ids:
            try:
                results.append(self.sync_collection(collection_id))
            except Exception as e:
                log.error(
                    "ledger_sync_collection_failed",
                    extra={"extra": {"run_id": run_id, "collection_id": collection_id,
                                     "error_type": type(e).__name__, "message": str(e)}},
                    exc_info=True,
                )
                results.append({"collection_id": collection_id, "status": "failed", "error": str(e)})

        summary = {
            "ok": True,
            "run_id": run_id,
            "collections": len(results),
            "skipped": sum(1 for r in results if r.get("status") == SKIPPED),
            "synced": sum(int(r.get("published", 0)) for r in results),
            "failed": sum(1 for r in results if r.get("status") not in (PUBLISH_OK, SKIPPED)),
            "results": results,
        }
        log.info(
            "ledger_sync_run_metrics",
            extra={"extra": {k: v for k, v in summary.items() if k != "results"} | {"duration_ms": t.ms()}},
        )
        return summary
