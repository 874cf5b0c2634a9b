from ledger.publisher import PublishPipeline
from models.megadata import Collection, Module, Token
from repos.module_repo import DEFAULT_MODULES
from sync.ledger_sync import LedgerSyncWorker, union_module_ids
from fakes import FakeLedger, FakeStore, NoSleepPacer

MODULES = [Module(mid, d["schema"]) for mid, d in DEFAULT_MODULES.items()]


def _store():
    store = FakeStore(MODULES)
    store.add_collection(Collection(id=1, account_id="0xa", name="one", published=True))
    store.add_collection(Collection(id=2, account_id="0xa", name="two", published=True))
    return store


def _pending(cid, tid, modules=("erc721",)):
    return Token(collection_id=cid, id=tid, data={"name": tid}, modules=list(modules))


def test_module_union_is_ordered_and_unique():
    toks = [_pending(1, "a", ["erc721"]), _pending(1, "b", ["extending_metadata", "erc721"])]
    assert union_module_ids(toks) == ["erc721", "extending_metadata"]


def test_sync_sends_one_batch_per_collection_and_marks_done():
    store = _store()
    for i in range(3):
        store.add_token(_pending(1, str(i)))
    store.add_token(_pending(2, "x"))
    ledger = FakeLedger(existing={(1, "0")})

    out = LedgerSyncWorker(store=store, publisher=PublishPipeline(ledger=ledger, pacer=NoSleepPacer()), batch_size=2).run()

    assert out["collections"] == 2
    assert out["synced"] == 3
    assert [t["collection_id"] for t in ledger.transactions] == [1, 2]
    assert ledger.transactions[0]["update"][0]["id"] == "0"
    assert store.get_token(1, "2").sync_status == "pending"
    assert store.get_token(1, "0").sync_status == "done"
    assert store.get_token(2, "x").sync_status == "done"


def test_failure_in_one_collection_does_not_stop_others():
    store = _store()
    store.add_token(_pending(1, "a"))
    store.add_token(_pending(2, "b"))

    class FlakyPipeline(PublishPipeline):
        def publish_batch(self, collection_id, tokens, modules, on_published=None):
            if collection_id == 1:
                raise RuntimeError("boom")
            return super().publish_batch(collection_id, tokens, modules, on_published)

    out = LedgerSyncWorker(store=store, publisher=FlakyPipeline(ledger=FakeLedger(), pacer=NoSleepPacer())).run()
    assert out["failed"] == 1
    assert store.get_token(1, "a").sync_status == "pending"
    assert store.get_token(2, "b").sync_status == "done"


def test_unpublished_collection_is_skipped():
    store = _store()
    store.add_collection(Collection(id=3, account_id="0xa", name="draft"))
    store.add_token(_pending(3, "a"))
    ledger = FakeLedger()
    out = LedgerSyncWorker(store=store, publisher=PublishPipeline(ledger=ledger, pacer=NoSleepPacer())).run()
    assert out["failed"] == 0
    assert ledger.transactions == []
    assert store.get_token(3, "a").sync_status == "pending"
    assert out["skipped"] == 1


def test_large_backlog_does_not_hide_other_collections():
    store = _store()
    store.add_collection(Collection(id=3, account_id="0xa", name="draft"))
    for i in range(50):
        store.add_token(_pending(3, f"d{i}"))
    for i in range(30):
        store.add_token(_pending(1, str(i)))
    store.add_token(_pending(2, "x"))
    ledger = FakeLedger()

    out = LedgerSyncWorker(
        store=store, publisher=PublishPipeline(ledger=ledger, pacer=NoSleepPacer()), batch_size=5, collection_limit=3
    ).run()

    assert out["collections"] == 3
    assert out["synced"] == 6
    assert [t["collection_id"] for t in ledger.transactions] == [1, 2]
    assert len(ledger.transactions[0]["create"]) == 5
    assert store.get_token(2, "x").sync_status == "done"
