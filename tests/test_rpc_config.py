import random

import pytest

from config.rpc import configured_networks, get_rpc_pool, pick_rpc_url
from config.settings import Settings, validate_startup_settings


def _settings(**kw):
    return Settings(_env_file=None, **kw)


def test_pool_splits_urls_and_converts_timeout():
    s = _settings(ETHEREUM_RPC_URLS=" https://a.example , https://b.example,,", ETHEREUM_RPC_TIMEOUT=2500)
    pool = get_rpc_pool("Ethereum", s)
    assert pool.urls == ["https://a.example", "https://b.example"]
    assert pool.timeout_s == 2.5
    assert pool.retries == 3


def test_unknown_or_unconfigured_network_has_no_pool():
    s = _settings(ETHEREUM_RPC_URLS="https://a.example")
    assert get_rpc_pool("solana", s) is None
    assert get_rpc_pool("polygon", s) is None
    assert configured_networks(s) == ["ethereum"]


def test_pick_is_always_from_pool():
    pool = get_rpc_pool("base", _settings(BASE_RPC_URLS="https://a,https://b,https://c"))
    rng = random.Random(7)
    picks = {pick_rpc_url(pool, rng) for _ in range(50)}
    assert picks <= {"https://a", "https://b", "https://c"}
    assert len(picks) > 1


def test_startup_validation_names_missing_settings():
    with pytest.raises(RuntimeError) as e:
        validate_startup_settings(_settings(LEDGER_URL="https://ledger"))
    msg = str(e.value)
    assert "LEDGER_BLOCKCHAIN_RID" in msg
    assert "METADATA_GATEWAY_URL" in msg
    assert "RPC_URLS" in msg


def test_startup_validation_passes_when_configured():
    validate_startup_settings(_settings(
        LEDGER_URL="https://ledger",
        LEDGER_BLOCKCHAIN_RID="ABC",
        METADATA_GATEWAY_URL="https://gw",
        POLYGON_RPC_URLS="https://p",
    ))
