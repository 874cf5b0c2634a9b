from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from google.cloud.firestore import Client

from models.megadata import Collection, Module, Token
from repos.collection_repo import CollectionRepository
from repos.module_repo import ModuleRepository
from repos.token_repo import TokenRepository
from storage.firestore_client import get_firestore_client


class TokenStore:
    """The single entry point the workers use for persisted collections, tokens and modules."""

    def __init__(self, db: Optional[Client] = None):
        db = db or get_firestore_client()
        self.collections = CollectionRepository(db)
        self.tokens = TokenRepository(db)
        self.modules = ModuleRepository(db)

    # tokens
    def list_token_ids(self, collection_id: int) -> List[str]:
        return self.tokens.list_token_ids(collection_id)

    def create_tokens(self, collection_id: int, tokens: List[Dict[str, Any]]) -> List[Token]:
        return self.tokens.create_many(collection_id, tokens)

    def get_token(self, collection_id: int, token_id: str) -> Optional[Token]:
        return self.tokens.get(collection_id, token_id)

    def update_token_data(self, collection_id: int, token_id: str, data: Dict[str, Any]) -> None:
        self.tokens.update_data(collection_id, token_id, data)

    def mark_published(self, collection_id: int, token_ids: Iterable[str]) -> None:
        self.tokens.mark_published(collection_id, token_ids)

    def mark_sync_done(self, collection_id: int, token_ids: Iterable[str]) -> None:
        self.tokens.mark_sync_done(collection_id, token_ids)

    def list_pending_collection_ids(self, limit: int) -> List[int]:
        return self.tokens.list_pending_collection_ids(limit)

    def list_pending_sync(self, collection_id: int, limit: int) -> List[Token]:
        return self.tokens.list_pending_sync(collection_id, limit)

    def list_unpublished_tokens(self, collection_id: int) -> List[Token]:
        return self.tokens.list_unpublished(collection_id)

    # collections
    def get_collection(self, collection_id: int) -> Optional[Collection]:
        return self.collections.get(collection_id)

    def create_collection(self, account_id: str, name: str, **external: Any) -> Collection:
        return self.collections.create(account_id, name, **external)

    def find_external_collection(self, source: str, external_id: str) -> Optional[Collection]:
        return self.collections.find_external(source, external_id)

    def set_collection_published(self, collection_id: int) -> None:
        self.collections.set_published(collection_id)

    def list_collections_needing_check(self, threshold: int, limit: int) -> List[Collection]:
        return self.collections.list_needing_check(threshold, limit)

    def update_last_checked(self, collection_id: int, ts: int) -> None:
        self.collections.update_last_checked(collection_id, ts)

    # modules
    def get_modules(self, module_ids: Iterable[str]) -> List[Module]:
        return self.modules.get_modules(module_ids)

    def seed_modules(self) -> int:
        return self.modules.seed_defaults()
