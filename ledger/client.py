from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from config.settings import settings

log = logging.getLogger("megadata.ledger.client")

OP_CREATE_COLLECTION = "megadata.create_collection"
OP_CREATE_ITEM = "megadata.create_item"
OP_UPDATE_ITEM = "megadata.update_item"
Q_GET_ITEM = "megadata.get_item"


class LedgerError(Exception):
    """A ledger query or transaction failed. The whole transaction is considered not applied."""


def _item_op(name: str, collection_id: int, item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": name,
        "args": [str(collection_id), str(item["id"]), json.dumps(item["data"], separators=(",", ":"))],
    }


class LedgerClient:
    """REST client for the abstraction chain node.

    Queries go to GET {url}/query/{rid}; transactions are posted to the
    signing gateway at POST {url}/tx/{rid}/operations, which signs with the
    service key and submits one transaction holding all given operations.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        blockchain_rid: Optional[str] = None,
        api_key: Optional[str] = None,
        http: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.LEDGER_URL).rstrip("/")
        self.rid = blockchain_rid if blockchain_rid is not None else settings.LEDGER_BLOCKCHAIN_RID
        key = api_key if api_key is not None else settings.LEDGER_API_KEY
        headers = {"Authorization": f"Bearer {key}"} if key else {}
        self.http = http or httpx.Client(timeout=settings.LEDGER_TIMEOUT_SECONDS, headers=headers)

    def _query(self, query_type: str, params: Dict[str, Any]) -> Any:
        try:
            r = self.http.get(f"{self.base_url}/query/{self.rid}", params={"type": query_type, **params})
            r.raise_for_status()
            return r.json()
        except (httpx.HTTPError, ValueError) as e:
            raise LedgerError(f"ledger_query_failed: {query_type}: {e}") from e

    def _send(self, operations: List[Dict[str, Any]]) -> None:
        if not operations:
            return
        try:
            r = self.http.post(f"{self.base_url}/tx/{self.rid}/operations", json={"operations": operations})
            r.raise_for_status()
        except httpx.HTTPError as e:
            log.error(
                "ledger_tx_failed",
                extra={"extra": {"operations": len(operations), "error_type": type(e).__name__, "message": str(e)}},
            )
            raise LedgerError(f"ledger_tx_failed: {e}") from e

    def item_exists(self, collection_id: int, token_id: str) -> bool:
        item = self._query(Q_GET_ITEM, {"collection": str(collection_id), "token_id": str(token_id)})
        return item is not None

    def submit_items(
        self,
        collection_id: int,
        create: Sequence[Dict[str, Any]] = (),
        update: Sequence[Dict[str, Any]] = (),
    ) -> None:
        """One transaction: a create op per new item and an update op per existing item."""
        ops = [_item_op(OP_CREATE_ITEM, collection_id, i) for i in create]
        ops += [_item_op(OP_UPDATE_ITEM, collection_id, i) for i in update]
        self._send(ops)

    def create_items(self, collection_id: int, items: Sequence[Dict[str, Any]]) -> None:
        self.submit_items(collection_id, create=items)

    def update_items(self, collection_id: int, items: Sequence[Dict[str, Any]]) -> None:
        self.submit_items(collection_id, update=items)

    def create_collection(self, owner_address: str, collection_id: int, name: str) -> None:
        self._send([{"name": OP_CREATE_COLLECTION, "args": [owner_address, str(collection_id), name]}])
