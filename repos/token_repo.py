from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from google.cloud import firestore
from google.cloud.firestore import Client

from models.megadata import Token
from models.schema import COL_COLLECTIONS, COL_TOKENS, SYNC_STATUS_DONE, SYNC_STATUS_PENDING
from storage.firestore_client import chunked, get_firestore_client


class TokenRepository:
    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_firestore_client()

    def _col(self, collection_id: int):
        return self.db.collection(COL_COLLECTIONS).document(str(collection_id)).collection(COL_TOKENS)

    def list_token_ids(self, collection_id: int) -> List[str]:
        return [ref.id for ref in self._col(collection_id).list_documents()]

    def get(self, collection_id: int, token_id: str) -> Optional[Token]:
        snap = self._col(collection_id).document(str(token_id)).get()
        if not snap.exists:
            return None
        return Token.from_doc(collection_id, snap.id, snap.to_dict() or {})

    def create_many(self, collection_id: int, tokens: List[Dict[str, Any]]) -> List[Token]:
        """Insert-only; a batch containing an existing token id fails as a whole."""
        created: List[Token] = []
        for chunk in chunked(tokens):
            batch = self.db.batch()
            pending: List[Token] = []
            for t in chunk:
                token = Token(
                    collection_id=collection_id,
                    id=str(t["id"]),
                    data=dict(t.get("data") or {}),
                    modules=list(t.get("modules") or []),
                    published=False,
                    sync_status=SYNC_STATUS_PENDING,
                )
                doc = token.to_doc()
                doc["created_at"] = firestore.SERVER_TIMESTAMP
                doc["updated_at"] = firestore.SERVER_TIMESTAMP
                batch.create(self._col(collection_id).document(token.id), doc)
                pending.append(token)
            batch.commit()
            created.extend(pending)
        return created

    def update_data(self, collection_id: int, token_id: str, data: Dict[str, Any],
                    modules: Optional[List[str]] = None) -> None:
        patch: Dict[str, Any] = {
            "data": data,
            "sync_status": SYNC_STATUS_PENDING,
            "updated_at": firestore.SERVER_TIMESTAMP,
        }
        if modules is not None:
            patch["modules"] = modules
        self._col(collection_id).document(str(token_id)).update(patch)

    def _patch_many(self, collection_id: int, token_ids: Iterable[str], patch: Dict[str, Any]) -> None:
        for chunk in chunked([str(t) for t in token_ids]):
            batch = self.db.batch()
            for token_id in chunk:
                batch.update(self._col(collection_id).document(token_id), patch)
            batch.commit()

    def mark_published(self, collection_id: int, token_ids: Iterable[str]) -> None:
        self._patch_many(collection_id, token_ids, {
            "published": True,
            "sync_status": SYNC_STATUS_DONE,
            "updated_at": firestore.SERVER_TIMESTAMP,
        })

    def mark_sync_done(self, collection_id: int, token_ids: Iterable[str]) -> None:
        self._patch_many(collection_id, token_ids, {
            "sync_status": SYNC_STATUS_DONE,
            "published": True,
            "updated_at": firestore.SERVER_TIMESTAMP,
        })

    def list_pending_collection_ids(self, limit: int) -> List[int]:
        """Distinct collection ids holding pending tokens, ascending.

        Skips from one collection to the next, so a collection with many
        pending tokens costs a single read here.
        """
        ids: List[int] = []
        last: Optional[int] = None
        while len(ids) < limit:
            q = self.db.collection_group(COL_TOKENS).where(
                filter=firestore.FieldFilter("sync_status", "==", SYNC_STATUS_PENDING)
            )
            if last is not None:
                q = q.where(filter=firestore.FieldFilter("collection_id", ">", last))
            snaps = list(q.order_by("collection_id").limit(1).stream())
            if not snaps:
                break
            last = int((snaps[0].to_dict() or {}).get("collection_id"))
            ids.append(last)
        return ids

    def list_pending_sync(self, collection_id: int, limit: int) -> List[Token]:
        q = (
            self._col(collection_id)
            .where(filter=firestore.FieldFilter("sync_status", "==", SYNC_STATUS_PENDING))
            .order_by("updated_at")
            .limit(limit)
        )
        return [Token.from_doc(collection_id, s.id, s.to_dict() or {}) for s in q.stream()]

    def list_unpublished(self, collection_id: int) -> List[Token]:
        q = self._col(collection_id).where(filter=firestore.FieldFilter("published", "==", False))
        return [Token.from_doc(collection_id, s.id, s.to_dict() or {}) for s in q.stream()]
