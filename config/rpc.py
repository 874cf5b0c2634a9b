from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import List, Optional

from config.settings import Settings, settings

NETWORKS = ("ethereum", "bsc", "polygon", "base", "arbitrum")

SUPPORTED_CONTRACT_TYPES = ("erc721",)


@dataclass(frozen=True)
class RpcPoolConfig:
    network: str
    urls: List[str] = field(default_factory=list)
    timeout_ms: int = 5000
    retries: int = 3

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0


def _split_csv(v: str) -> List[str]:
    return [x.strip() for x in (v or "").split(",") if x.strip()]


def get_rpc_pool(network: str, s: Optional[Settings] = None) -> Optional[RpcPoolConfig]:
    s = s or settings
    key = (network or "").strip().lower()
    if key not in NETWORKS:
        return None
    prefix = key.upper()
    urls = _split_csv(getattr(s, f"{prefix}_RPC_URLS"))
    if not urls:
        return None
    return RpcPoolConfig(
        network=key,
        urls=urls,
        timeout_ms=int(getattr(s, f"{prefix}_RPC_TIMEOUT")),
        retries=int(getattr(s, f"{prefix}_RPC_RETRIES")),
    )


def configured_networks(s: Optional[Settings] = None) -> List[str]:
    return [n for n in NETWORKS if get_rpc_pool(n, s) is not None]


def pick_rpc_url(pool: RpcPoolConfig, rng: Optional[random.Random] = None) -> str:
    # Uniform pick per call; no fallback to siblings on failure.
    return (rng or random).choice(pool.urls)
