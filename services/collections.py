from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from chain.rpc_gateway import ChainGateway
from config.rpc import NETWORKS, SUPPORTED_CONTRACT_TYPES
from ledger.client import LedgerClient
from ledger.publisher import PUBLISH_OK, PublishOutcome, PublishPipeline
from metadata.fetcher import MetadataFetcher
from models.megadata import Collection, Token, ValidationResult
from models.schema import COLLECTION_KIND_EXTERNAL, SYNC_STATUS_PENDING
from permissions.identity import IdentityLinkClient, resolve_caller_identities
from permissions.validator import ModuleValidator
from repos.token_store import TokenStore
from sync.ledger_sync import union_module_ids

log = logging.getLogger("megadata.services.collections")


class InvalidCollectionRequest(ValueError):
    pass


class CollectionNotFound(LookupError):
    pass


class TokenNotFound(LookupError):
    pass


class CollectionService:
    """Collection and token operations the API exposes that touch chain or ledger state."""

    def __init__(
        self,
        store: Optional[TokenStore] = None,
        gateway: Optional[ChainGateway] = None,
        fetcher: Optional[MetadataFetcher] = None,
        validator: Optional[ModuleValidator] = None,
        ledger: Optional[LedgerClient] = None,
        publisher: Optional[PublishPipeline] = None,
        linker: Optional[IdentityLinkClient] = None,
    ):
        self.store = store or TokenStore()
        self.gateway = gateway or ChainGateway()
        self.fetcher = fetcher or MetadataFetcher(gateway=self.gateway)
        self.validator = validator or ModuleValidator(gateway=self.gateway)
        self.ledger = ledger or LedgerClient()
        self.publisher = publisher or PublishPipeline(ledger=self.ledger)
        self.linker = linker or IdentityLinkClient()

    def identities(self, wallet: str) -> List[str]:
        return resolve_caller_identities(wallet, self.linker)

    def _collection(self, collection_id: int, account_id: Optional[str] = None) -> Collection:
        collection = self.store.get_collection(collection_id)
        if collection is None:
            raise CollectionNotFound(f"collection_not_found: {collection_id}")
        if account_id is not None and collection.account_id.lower() != account_id.lower():
            # Other accounts' collections are indistinguishable from missing ones.
            raise CollectionNotFound(f"collection_not_found: {collection_id}")
        return collection

    def _token(self, collection_id: int, token_id: str) -> Token:
        token = self.store.get_token(collection_id, token_id)
        if token is None:
            raise TokenNotFound(f"token_not_found: {collection_id}/{token_id}")
        return token

    def register_external_collection(
        self, account_id: str, source: str, contract: str, contract_type: str = "erc721"
    ) -> Tuple[Collection, bool]:
        """Returns (collection, created). An already registered contract is returned as is."""
        source = (source or "").strip().lower()
        contract = (contract or "").strip().lower()
        contract_type = (contract_type or "").strip().lower()
        if source not in NETWORKS:
            raise InvalidCollectionRequest(f"unsupported_source: {source}")
        if contract_type not in SUPPORTED_CONTRACT_TYPES:
            raise InvalidCollectionRequest(f"unsupported_contract_type: {contract_type}")
        if not contract:
            raise InvalidCollectionRequest("contract_address_required")

        existing = self.store.find_external_collection(source, contract)
        if existing is not None:
            log.info(
                "external_collection_exists",
                extra={"extra": {"collection_id": existing.id, "source": source, "contract": contract,
                                 "published": existing.published}},
            )
            if not existing.published:
                # An earlier registration stored the row but never reached the ledger.
                self.publish_collection(existing.id)
                existing.published = True
            return existing, False

        name = self.gateway.get_contract_name(source, contract_type, contract)
        collection = self.store.create_collection(
            account_id,
            name,
            kind=COLLECTION_KIND_EXTERNAL,
            source=source,
            external_id=contract,
            contract_type=contract_type,
        )
        log.info(
            "external_collection_registered",
            extra={"extra": {"collection_id": collection.id, "source": source, "contract": contract, "name": name}},
        )

        self.publish_collection(collection.id)
        collection.published = True
        return collection, True

    def publish_collection(
        self,
        collection_id: int,
        token_ids: Optional[Iterable[str]] = None,
        all_tokens: bool = False,
        account_id: Optional[str] = None,
    ) -> PublishOutcome:
        """Creates the collection on the ledger if needed, then publishes selected unpublished tokens.

        Raises LedgerError / LedgerInconsistency when the token batch does not fully land.
        """
        collection = self._collection(collection_id, account_id)
        if not collection.published:
            self.ledger.create_collection(collection.account_id, collection.id, collection.name)
            self.store.set_collection_published(collection.id)
            log.info("collection_published", extra={"extra": {"collection_id": collection.id}})

        unpublished = self.store.list_unpublished_tokens(collection.id)
        if all_tokens:
            selected = unpublished
        else:
            wanted = {str(t) for t in (token_ids or [])}
            selected = [t for t in unpublished if t.id in wanted]
        if not selected:
            return PublishOutcome(collection_id=collection.id, status=PUBLISH_OK)

        modules = self.store.get_modules(union_module_ids(selected))
        outcome = self.publisher.publish_batch(
            collection.id, selected, modules, on_published=self.store.mark_published
        )
        outcome.raise_for_status()
        return outcome

    def validate_token(
        self, wallet: str, modules: Sequence[str], token_id: str, metadata: Dict[str, Any]
    ) -> ValidationResult:
        return self.validator.validate(modules, token_id, metadata, self.identities(wallet))

    def token_permissions(self, wallet: str, collection_id: int, token_id: str) -> ValidationResult:
        token = self._token(collection_id, token_id)
        return self.validator.validate(token.modules, token.id, token.data, self.identities(wallet))

    def refresh_token_metadata(self, wallet: str, collection_id: int, token_id: str) -> Token:
        """Re-reads tokenURI metadata from chain and merges it over the stored data.

        The token goes back to pending so the sync worker pushes the new data.
        """
        collection = self._collection(collection_id)
        if not collection.is_external:
            raise InvalidCollectionRequest("collection_not_external")
        token = self._token(collection_id, token_id)
        self.validator.require_valid(token.modules, token.id, token.data, self.identities(wallet))

        fetched = self.fetcher.fetch_metadata(collection.source or "", collection.external_id or "", token.id)
        merged = self.fetcher.merge_metadata(token.data, fetched)
        self.store.update_token_data(collection_id, token.id, merged)
        token.data = merged
        token.sync_status = SYNC_STATUS_PENDING
        log.info("token_metadata_refreshed", extra={"extra": {"collection_id": collection_id, "token_id": token.id}})
        return token


_service: Optional[CollectionService] = None


def get_collection_service() -> CollectionService:
    global _service
    if _service is None:
        _service = CollectionService()
    return _service
