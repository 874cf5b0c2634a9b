import pytest

from ledger.client import LedgerError
from ledger.publisher import (
    PUBLISH_FAILED,
    PUBLISH_INCONSISTENT,
    PUBLISH_OK,
    LedgerInconsistency,
    PublishPipeline,
)
from models.megadata import Module, Token
from repos.module_repo import ERC721_SCHEMA
from fakes import FakeLedger, NoSleepPacer

MODULES = [Module("erc721", ERC721_SCHEMA)]


def _tokens(*ids):
    return [Token(collection_id=1, id=i, data={"name": f"#{i}", "junk": 1}, modules=["erc721"]) for i in ids]


def test_existing_items_are_updated_new_ones_created_in_one_tx():
    ledger = FakeLedger(existing={(1, "2")})
    marked = []
    outcome = PublishPipeline(ledger=ledger, pacer=NoSleepPacer()).publish_batch(
        1, _tokens("1", "2"), MODULES, on_published=lambda cid, ids: marked.append((cid, ids))
    )
    assert outcome.status == PUBLISH_OK
    assert outcome.created == ["1"]
    assert outcome.updated == ["2"]
    assert len(ledger.transactions) == 1
    tx = ledger.transactions[0]
    assert tx["create"] == [{"id": "1", "data": {"erc721": {"name": "#1"}}}]
    assert tx["update"] == [{"id": "2", "data": {"erc721": {"name": "#2"}}}]
    assert marked == [(1, ["1", "2"])]
    assert outcome.published == 2


def test_ledger_failure_marks_nothing():
    marked = []
    outcome = PublishPipeline(ledger=FakeLedger(fail=True), pacer=NoSleepPacer()).publish_batch(
        1, _tokens("1"), MODULES, on_published=lambda cid, ids: marked.append(ids)
    )
    assert outcome.status == PUBLISH_FAILED
    assert outcome.ledger_written == 0
    assert marked == []
    with pytest.raises(LedgerError):
        outcome.raise_for_status()


def test_status_write_failure_is_reported_as_inconsistent():
    def boom(cid, ids):
        raise RuntimeError("firestore down")

    outcome = PublishPipeline(ledger=FakeLedger(), pacer=NoSleepPacer()).publish_batch(
        1, _tokens("1", "2", "3"), MODULES, on_published=boom
    )
    assert outcome.status == PUBLISH_INCONSISTENT
    assert outcome.ledger_written == 3
    assert outcome.published == 0
    assert "firestore down" in outcome.error
    with pytest.raises(LedgerInconsistency):
        outcome.raise_for_status()


def test_retry_after_inconsistency_becomes_update():
    ledger = FakeLedger()
    pipeline = PublishPipeline(ledger=ledger, pacer=NoSleepPacer())

    def boom(cid, ids):
        raise RuntimeError("firestore down")

    pipeline.publish_batch(1, _tokens("1"), MODULES, on_published=boom)
    again = pipeline.publish_batch(1, _tokens("1"), MODULES, on_published=lambda cid, ids: None)
    assert again.status == PUBLISH_OK
    assert again.created == []
    assert again.updated == ["1"]


def test_empty_batch_is_a_noop():
    ledger = FakeLedger()
    outcome = PublishPipeline(ledger=ledger, pacer=NoSleepPacer()).publish_batch(1, [], MODULES)
    assert outcome.status == PUBLISH_OK
    assert ledger.transactions == []
    assert ledger.probes == []
