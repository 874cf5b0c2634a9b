from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from config.settings import settings

log = logging.getLogger("megadata.permissions.identity")


class IdentityLinkClient:
    """Linked wallets for an address, from the identity linking service."""

    def __init__(self, base_url: Optional[str] = None, http: Optional[httpx.Client] = None):
        self.base_url = (base_url if base_url is not None else settings.IDENTITY_LINK_URL).rstrip("/")
        self.http = http or httpx.Client(timeout=10.0)

    def get_linked_accounts(self, address: str) -> List[str]:
        if not self.base_url:
            return []
        r = self.http.get(f"{self.base_url}/accounts/{address}/linked")
        r.raise_for_status()
        data = r.json()
        if isinstance(data, dict):
            data = data.get("accounts") or []
        return [str(a) for a in data if a]


def resolve_caller_identities(wallet: str, linker: Optional[IdentityLinkClient] = None) -> List[str]:
    """The authenticated wallet first, then its linked accounts, deduplicated."""
    identities: List[str] = [wallet] if wallet else []
    if not wallet or linker is None:
        return identities
    try:
        linked = linker.get_linked_accounts(wallet)
    except (httpx.HTTPError, ValueError) as e:
        # Degrade to the wallet alone; ownership checks still run against it.
        log.warning(
            "identity_link_lookup_failed",
            extra={"extra": {"wallet": wallet, "error_type": type(e).__name__, "message": str(e)}},
        )
        return identities
    seen = {wallet.lower()}
    for address in linked:
        if address.lower() in seen:
            continue
        seen.add(address.lower())
        identities.append(address)
    return identities
