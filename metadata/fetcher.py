from __future__ import annotations

import base64
import binascii
import copy
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import unquote

import httpx

from chain.rpc_gateway import ChainGateway
from config.settings import settings

log = logging.getLogger("megadata.metadata.fetcher")

DATA_URI_BASE64_JSON = "data:application/json;base64,"
# Plain inline JSON variants seen in the wild (URL-encoded payload).
DATA_URI_PLAIN_JSON = ("data:application/json;utf8,", "data:application/json,")


class FetchError(Exception):
    """Token metadata could not be resolved (non-2xx, bad payload, bad data URI)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _decode_json_object(raw: str | bytes, where: str) -> Dict[str, Any]:
    try:
        obj = json.loads(raw)
    except (ValueError, UnicodeDecodeError) as e:
        raise FetchError(f"invalid_json: {where}: {e}") from e
    if not isinstance(obj, dict):
        raise FetchError(f"metadata_not_an_object: {where}")
    return obj


def parse_data_uri(uri: str) -> Optional[Dict[str, Any]]:
    """Inline JSON metadata from a data URI, or None when the URI is not inline."""
    if uri.startswith(DATA_URI_BASE64_JSON):
        payload = uri[len(DATA_URI_BASE64_JSON):]
        try:
            raw = base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise FetchError(f"invalid_base64_data_uri: {e}") from e
        return _decode_json_object(raw, "data_uri")
    for prefix in DATA_URI_PLAIN_JSON:
        if uri.startswith(prefix):
            return _decode_json_object(unquote(uri[len(prefix):]), "data_uri")
    return None


def gateway_url(uri: str, base_url: Optional[str] = None) -> str:
    base = (base_url if base_url is not None else settings.METADATA_GATEWAY_URL).rstrip("/")
    return f"{base}/ext/{uri}"


def merge_metadata(original: Dict[str, Any], fetched: Dict[str, Any]) -> Dict[str, Any]:
    """Deep copy of original with every top-level key of fetched written over it.

    Nested objects and arrays from fetched replace the original value outright.
    """
    merged = copy.deepcopy(original or {})
    for key, value in (fetched or {}).items():
        merged[key] = copy.deepcopy(value)
    return merged


class MetadataFetcher:
    def __init__(
        self,
        gateway: Optional[ChainGateway] = None,
        http: Optional[httpx.Client] = None,
        base_url: Optional[str] = None,
    ):
        self.gateway = gateway or ChainGateway()
        self.http = http or httpx.Client(timeout=settings.METADATA_FETCH_TIMEOUT_SECONDS, follow_redirects=True)
        self.base_url = base_url

    def fetch_metadata(self, network: str, contract: str, token_id: str) -> Dict[str, Any]:
        """tokenURI → metadata object annotated with uri/source/id.

        Raises RpcError / UnsupportedContract from the gateway, FetchError otherwise.
        """
        uri = self.gateway.token_uri(network, contract, token_id)
        if not uri:
            raise FetchError(f"empty_token_uri: {contract}/{token_id}")

        metadata = parse_data_uri(uri)
        if metadata is None:
            metadata = self._fetch_remote(uri)

        # Annotation wins only for its own keys.
        metadata["uri"] = uri
        metadata["source"] = network
        metadata["id"] = contract
        return metadata

    def _fetch_remote(self, uri: str) -> Dict[str, Any]:
        url = gateway_url(uri, self.base_url)
        try:
            r = self.http.get(url)
        except httpx.HTTPError as e:
            raise FetchError(f"metadata_request_failed: {type(e).__name__}: {e}") from e
        if r.status_code < 200 or r.status_code >= 300:
            log.info(
                "metadata_fetch_non_2xx",
                extra={"extra": {"status_code": r.status_code, "uri": uri}},
            )
            raise FetchError(f"metadata_fetch_failed: status={r.status_code}", status_code=r.status_code)
        return _decode_json_object(r.content, uri)

    def merge_metadata(self, original: Dict[str, Any], fetched: Dict[str, Any]) -> Dict[str, Any]:
        return merge_metadata(original, fetched)
