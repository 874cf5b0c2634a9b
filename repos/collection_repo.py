from __future__ import annotations

from typing import Any, Dict, List, Optional

from google.cloud import firestore
from google.cloud.firestore import Client, Transaction

from models.megadata import Collection
from models.schema import COL_COLLECTIONS, COL_SYSTEM, COLLECTION_KIND_EXTERNAL, DOC_COLLECTION_COUNTER
from storage.firestore_client import get_firestore_client


class CollectionRepository:
    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_firestore_client()

    def _ref(self, collection_id: int):
        return self.db.collection(COL_COLLECTIONS).document(str(collection_id))

    def get(self, collection_id: int) -> Optional[Collection]:
        snap = self._ref(collection_id).get()
        if not snap.exists:
            return None
        return Collection.from_doc(collection_id, snap.to_dict() or {})

    def _next_id(self) -> int:
        ref = self.db.collection(COL_SYSTEM).document(DOC_COLLECTION_COUNTER)

        @firestore.transactional
        def _bump(transaction: Transaction) -> int:
            snap = ref.get(transaction=transaction)
            current = int((snap.to_dict() or {}).get("value", 0)) if snap.exists else 0
            transaction.set(ref, {"value": current + 1}, merge=True)
            return current + 1

        return _bump(self.db.transaction())

    def create(self, account_id: str, name: str, **external: Any) -> Collection:
        collection_id = self._next_id()
        collection = Collection(id=collection_id, account_id=account_id, name=name, **external)
        doc = collection.to_doc()
        doc["created_at"] = firestore.SERVER_TIMESTAMP
        self._ref(collection_id).create(doc)
        return collection

    def find_external(self, source: str, external_id: str) -> Optional[Collection]:
        q = (
            self.db.collection(COL_COLLECTIONS)
            .where(filter=firestore.FieldFilter("kind", "==", COLLECTION_KIND_EXTERNAL))
            .where(filter=firestore.FieldFilter("source", "==", source))
            .where(filter=firestore.FieldFilter("external_id", "==", external_id))
            .limit(1)
        )
        for snap in q.stream():
            return Collection.from_doc(int(snap.id), snap.to_dict() or {})
        return None

    def set_published(self, collection_id: int) -> None:
        self._ref(collection_id).set({"published": True}, merge=True)

    def list_needing_check(self, threshold: int, limit: int) -> List[Collection]:
        """External collections never checked or checked before threshold; oldest first."""
        q = self.db.collection(COL_COLLECTIONS).where(
            filter=firestore.FieldFilter("kind", "==", COLLECTION_KIND_EXTERNAL)
        )
        due: List[Collection] = []
        for snap in q.stream():
            c = Collection.from_doc(int(snap.id), snap.to_dict() or {})
            if c.last_checked_at is None or c.last_checked_at < threshold:
                due.append(c)
        due.sort(key=lambda c: (c.last_checked_at is not None, c.last_checked_at or 0, c.id))
        return due[:limit]

    def update_last_checked(self, collection_id: int, ts: int) -> bool:
        ref = self._ref(collection_id)

        @firestore.transactional
        def _apply(transaction: Transaction) -> bool:
            snap = ref.get(transaction=transaction)
            data: Dict[str, Any] = snap.to_dict() if snap.exists else {}
            current = data.get("last_checked_at")
            # Never moves backwards.
            if current is not None and int(current) >= ts:
                return False
            transaction.set(ref, {"last_checked_at": ts}, merge=True)
            return True

        return _apply(self.db.transaction())
