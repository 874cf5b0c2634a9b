import base64
import json

import httpx
import pytest

from metadata.fetcher import FetchError, MetadataFetcher, gateway_url, merge_metadata, parse_data_uri
from fakes import CONTRACT, FakeGateway


def _no_http(request):
    raise AssertionError(f"unexpected http request: {request.url}")


def _b64_uri(obj):
    return "data:application/json;base64," + base64.b64encode(json.dumps(obj).encode()).decode()


def test_base64_data_uri_makes_no_http_request():
    gw = FakeGateway(uris={"7": _b64_uri({"name": "Seven", "id": "ignored"})})
    fetcher = MetadataFetcher(gateway=gw, http=httpx.Client(transport=httpx.MockTransport(_no_http)), base_url="https://gw")
    md = fetcher.fetch_metadata("ethereum", CONTRACT, "7")
    assert md["name"] == "Seven"
    assert md["source"] == "ethereum"
    assert md["id"] == CONTRACT
    assert md["uri"].startswith("data:application/json;base64,")


def test_plain_data_uri_is_url_decoded():
    assert parse_data_uri('data:application/json,%7B%22a%22%3A1%7D') == {"a": 1}
    assert parse_data_uri("ipfs://Qm") is None


def test_remote_uri_goes_through_gateway():
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, json={"name": "Remote", "image": "ipfs://img"})

    gw = FakeGateway(uris={"1": "ipfs://QmHash/1"})
    fetcher = MetadataFetcher(gateway=gw, http=httpx.Client(transport=httpx.MockTransport(handler)), base_url="https://gw/")
    md = fetcher.fetch_metadata("polygon", CONTRACT, "1")
    assert len(seen) == 1
    assert seen[0].startswith("https://gw/ext/")
    assert seen[0].endswith("QmHash/1")
    assert md["name"] == "Remote"
    assert md["uri"] == "ipfs://QmHash/1"


def test_non_2xx_is_fetch_error():
    gw = FakeGateway(uris={"1": "https://meta.example/1"})
    http = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(404, text="nope")))
    fetcher = MetadataFetcher(gateway=gw, http=http, base_url="https://gw")
    with pytest.raises(FetchError) as e:
        fetcher.fetch_metadata("ethereum", CONTRACT, "1")
    assert e.value.status_code == 404


def test_non_object_payload_is_fetch_error():
    with pytest.raises(FetchError):
        parse_data_uri(_b64_uri([1, 2, 3]))


def test_gateway_url_shape():
    assert gateway_url("ar://tx", "https://gw") == "https://gw/ext/ar://tx"


def test_merge_fetched_wins_and_original_untouched():
    original = {"name": "old", "custom": {"keep": True}, "attributes": [{"trait_type": "a", "value": 1}]}
    fetched = {"name": "new", "attributes": [{"trait_type": "b", "value": 2}]}
    merged = merge_metadata(original, fetched)
    assert merged["name"] == "new"
    assert merged["attributes"] == [{"trait_type": "b", "value": 2}]
    assert merged["custom"] == {"keep": True}
    assert original["name"] == "old"
    merged["custom"]["keep"] = False
    assert original["custom"]["keep"] is True
