import json

import httpx
import pytest

from ledger.client import LedgerClient, LedgerError


def _client(handler):
    return LedgerClient(
        base_url="https://node/",
        blockchain_rid="RID",
        api_key="k",
        http=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_item_exists_queries_by_collection_and_token():
    def handler(request):
        assert request.url.path == "/query/RID"
        assert request.url.params["type"] == "megadata.get_item"
        assert request.url.params["collection"] == "4"
        if request.url.params["token_id"] == "1":
            return httpx.Response(200, content=b"null")
        return httpx.Response(200, json={"id": "2"})

    c = _client(handler)
    assert c.item_exists(4, "1") is False
    assert c.item_exists(4, "2") is True


def test_submit_items_sends_one_transaction():
    bodies = []

    def handler(request):
        assert request.url.path == "/tx/RID/operations"
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"status": "confirmed"})

    _client(handler).submit_items(4, create=[{"id": "1", "data": {"a": 1}}], update=[{"id": "2", "data": {}}])
    assert len(bodies) == 1
    ops = bodies[0]["operations"]
    assert [o["name"] for o in ops] == ["megadata.create_item", "megadata.update_item"]
    assert ops[0]["args"] == ["4", "1", '{"a":1}']


def test_nothing_to_send_makes_no_request():
    _client(lambda r: pytest.fail("unexpected request")).submit_items(4)


def test_http_failure_is_ledger_error():
    with pytest.raises(LedgerError):
        _client(lambda r: httpx.Response(500)).create_collection("0xabc", 4, "Apes")
    with pytest.raises(LedgerError):
        _client(lambda r: httpx.Response(502)).item_exists(4, "1")
