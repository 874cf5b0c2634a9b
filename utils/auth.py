from __future__ import annotations

import re

from fastapi import HTTPException, Request

WALLET_HEADER = "X-Wallet-Address"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def require_wallet(request: Request) -> str:
    """
    Returns the caller's wallet address. The upstream JWT layer verifies the
    session and forwards the wallet in X-Wallet-Address; this service trusts it.
    """
    wallet = (request.headers.get(WALLET_HEADER) or "").strip()
    if not wallet:
        raise HTTPException(status_code=401, detail="missing_wallet_address")
    if not _ADDRESS_RE.match(wallet):
        raise HTTPException(status_code=401, detail="invalid_wallet_address")
    return wallet
