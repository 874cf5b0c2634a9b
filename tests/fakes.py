from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Set

from chain.errors import RpcError
from ledger.client import LedgerError
from models.megadata import Collection, Module, Token
from models.schema import SYNC_STATUS_DONE, SYNC_STATUS_PENDING

OWNER = "0x" + "a" * 40
STRANGER = "0x" + "b" * 40
OPERATOR = "0x" + "c" * 40
ADMIN = "0x" + "d" * 40
CONTRACT = "0x" + "1" * 40


class FakeGateway:
    def __init__(self, owners=None, contract_owner=None, approvals=None, token_ids=None, uris=None, name="Fake Apes"):
        self.owners: Dict[str, Optional[str]] = dict(owners or {})
        self.owner = contract_owner
        self.approvals: Set[tuple] = set(approvals or [])
        self.token_ids: Set[str] = set(token_ids or [])
        self.uris: Dict[str, str] = dict(uris or {})
        self.name = name
        self.calls: List[tuple] = []
        self.fail_enumeration = False
        self.fail_contracts: Set[str] = set()

    def get_contract_name(self, source, kind, contract):
        self.calls.append(("get_contract_name", contract))
        return self.name

    def get_token_ids(self, source, kind, contract):
        self.calls.append(("get_token_ids", contract))
        if self.fail_enumeration or contract in self.fail_contracts:
            raise RpcError("rpc down")
        return set(self.token_ids)

    def token_uri(self, source, contract, token_id):
        self.calls.append(("token_uri", token_id))
        if token_id not in self.uris:
            raise RpcError(f"no uri for {token_id}")
        return self.uris[token_id]

    def owner_of(self, source, contract, token_id):
        self.calls.append(("owner_of", token_id))
        return self.owners.get(str(token_id))

    def contract_owner(self, source, contract):
        self.calls.append(("contract_owner", contract))
        return self.owner

    def is_approved_for_all(self, source, contract, owner, operator):
        self.calls.append(("is_approved_for_all", owner, operator))
        return (owner.lower(), operator.lower()) in self.approvals


class FakeLedger:
    def __init__(self, existing=None, fail=False):
        self.existing: Set[tuple] = set(existing or [])
        self.fail = fail
        self.transactions: List[Dict[str, Any]] = []
        self.collections: List[tuple] = []
        self.probes: List[str] = []

    def item_exists(self, collection_id, token_id):
        self.probes.append(token_id)
        return (collection_id, token_id) in self.existing

    def submit_items(self, collection_id, create=(), update=()):
        if self.fail:
            raise LedgerError("ledger_tx_failed: boom")
        self.transactions.append({"collection_id": collection_id, "create": list(create), "update": list(update)})
        for item in list(create) + list(update):
            self.existing.add((collection_id, item["id"]))

    def create_collection(self, owner_address, collection_id, name):
        if self.fail:
            raise LedgerError("ledger_tx_failed: boom")
        self.collections.append((owner_address, collection_id, name))


class NoSleepPacer:
    def iterate(self, items):
        return iter(items)


class FakeStore:
    """In-memory stand-in for TokenStore."""

    def __init__(self, modules: Optional[Iterable[Module]] = None):
        self.collections: Dict[int, Collection] = {}
        self.tokens: Dict[int, Dict[str, Token]] = {}
        self.modules: Dict[str, Module] = {m.id: m for m in (modules or [])}
        self.checked: List[tuple] = []
        self.fail_create_for: Set[str] = set()
        self.fail_mark = False

    # collections
    def add_collection(self, collection: Collection) -> Collection:
        self.collections[collection.id] = collection
        self.tokens.setdefault(collection.id, {})
        return collection

    def get_collection(self, collection_id):
        return self.collections.get(collection_id)

    def create_collection(self, account_id, name, **external):
        cid = max(self.collections, default=0) + 1
        return self.add_collection(Collection(id=cid, account_id=account_id, name=name, **external))

    def find_external_collection(self, source, external_id):
        for c in self.collections.values():
            if c.is_external and c.source == source and c.external_id == external_id:
                return c
        return None

    def set_collection_published(self, collection_id):
        self.collections[collection_id].published = True

    def list_collections_needing_check(self, threshold, limit):
        due = [c for c in self.collections.values()
               if c.is_external and (c.last_checked_at is None or c.last_checked_at < threshold)]
        due.sort(key=lambda c: (c.last_checked_at is not None, c.last_checked_at or 0))
        return due[:limit]

    def update_last_checked(self, collection_id, ts):
        self.checked.append((collection_id, ts))
        self.collections[collection_id].last_checked_at = ts

    # tokens
    def add_token(self, token: Token) -> Token:
        self.tokens.setdefault(token.collection_id, {})[token.id] = token
        return token

    def list_token_ids(self, collection_id):
        return list(self.tokens.get(collection_id, {}))

    def create_tokens(self, collection_id, tokens):
        if any(t["id"] in self.fail_create_for for t in tokens):
            raise RuntimeError("firestore unavailable")
        created = []
        for t in tokens:
            token = Token(collection_id=collection_id, id=str(t["id"]), data=dict(t.get("data") or {}),
                          modules=list(t.get("modules") or []))
            self.tokens.setdefault(collection_id, {})[token.id] = token
            created.append(token)
        return created

    def get_token(self, collection_id, token_id):
        return self.tokens.get(collection_id, {}).get(token_id)

    def update_token_data(self, collection_id, token_id, data):
        token = self.tokens[collection_id][token_id]
        token.data = data
        token.sync_status = SYNC_STATUS_PENDING

    def mark_published(self, collection_id, token_ids):
        if self.fail_mark:
            raise RuntimeError("status write failed")
        for tid in token_ids:
            token = self.tokens[collection_id][tid]
            token.published = True
            token.sync_status = SYNC_STATUS_DONE

    def mark_sync_done(self, collection_id, token_ids):
        self.mark_published(collection_id, token_ids)

    def list_pending_collection_ids(self, limit):
        ids = sorted(cid for cid, toks in self.tokens.items()
                     if any(t.sync_status == SYNC_STATUS_PENDING for t in toks.values()))
        return ids[:limit]

    def list_pending_sync(self, collection_id, limit):
        out = [t for t in self.tokens.get(collection_id, {}).values() if t.sync_status == SYNC_STATUS_PENDING]
        return out[:limit]

    def list_unpublished_tokens(self, collection_id):
        return [t for t in self.tokens.get(collection_id, {}).values() if not t.published]

    # modules
    def get_modules(self, module_ids):
        return [self.modules[m] for m in module_ids if m in self.modules]
