from __future__ import annotations

import logging
import random
from typing import Any, Callable, Dict, Optional, Set

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError
from web3.providers.rpc.utils import ExceptionRetryConfiguration

from chain.abi import (
    ERC721_ENUMERABLE_INTERFACE_ID,
    ERC721_INTERFACE_ID,
    ERC721_METADATA_INTERFACE_ID,
    ERC721_READ_ABI,
    SIG_IS_APPROVED_FOR_ALL,
    SIG_NAME,
    SIG_OWNER,
    SIG_OWNER_OF,
    SIG_TOKEN_BY_INDEX,
    SIG_TOKEN_URI,
    SIG_TOTAL_SUPPLY,
    ZERO_ADDRESS,
)
from chain.errors import RpcConfigError, RpcError, UnsupportedContract
from config.rpc import SUPPORTED_CONTRACT_TYPES, RpcPoolConfig, get_rpc_pool, pick_rpc_url

log = logging.getLogger("megadata.chain.gateway")


def _selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


def _as_uint(token_id: Any) -> int:
    s = str(token_id).strip()
    if not s.isdigit():
        raise ValueError(f"invalid_token_id: {token_id!r}")
    return int(s)


def _default_web3_factory(url: str, pool: RpcPoolConfig) -> Web3:
    provider = Web3.HTTPProvider(
        url,
        request_kwargs={"timeout": pool.timeout_s},
        session=requests.Session(),
        exception_retry_configuration=ExceptionRetryConfiguration(retries=pool.retries),
    )
    return Web3(provider)


class ChainGateway:
    """Read-only ERC-721 calls against a per-network endpoint pool.

    Every call picks one endpoint uniformly at random. Capabilities are probed
    before calling (ERC-165 first, deployed bytecode selectors as fallback), so
    a missing function surfaces as UnsupportedContract instead of a revert.
    Everything else raised by the transport or the call is wrapped in RpcError.
    """

    def __init__(
        self,
        pool_resolver: Callable[[str], Optional[RpcPoolConfig]] = get_rpc_pool,
        web3_factory: Callable[[str, RpcPoolConfig], Any] = _default_web3_factory,
        rng: Optional[random.Random] = None,
    ):
        self.pool_resolver = pool_resolver
        self.web3_factory = web3_factory
        self.rng = rng
        self._clients: Dict[str, Any] = {}

    # -- plumbing -----------------------------------------------------------

    def _web3(self, network: str) -> Any:
        pool = self.pool_resolver((network or "").strip().lower())
        if pool is None or not pool.urls:
            raise RpcConfigError(f"no_rpc_urls_configured: {network}")
        url = pick_rpc_url(pool, self.rng)
        w3 = self._clients.get(url)
        if w3 is None:
            w3 = self.web3_factory(url, pool)
            self._clients[url] = w3
        return w3

    def _contract(self, w3: Any, address: str) -> Any:
        try:
            checksum = Web3.to_checksum_address(address)
        except ValueError as e:
            raise UnsupportedContract(address, "valid_address") from e
        return w3.eth.contract(address=checksum, abi=ERC721_READ_ABI)

    def _require_erc721(self, kind: str, contract: str) -> None:
        if (kind or "").strip().lower() not in SUPPORTED_CONTRACT_TYPES:
            raise UnsupportedContract(contract, f"contract_type:{kind}")

    def _supports_interface(self, c: Any, interface_id: str) -> bool:
        try:
            return bool(c.functions.supportsInterface(bytes.fromhex(interface_id)).call())
        except Exception:
            # Contracts without ERC-165 revert or return garbage; fall back to bytecode.
            return False

    def _bytecode_has(self, w3: Any, c: Any, *signatures: str) -> bool:
        try:
            code = bytes(w3.eth.get_code(c.address))
        except Exception as e:
            raise RpcError(f"get_code_failed: {e}", cause=e) from e
        if not code:
            return False
        return all(_selector(sig) in code for sig in signatures)

    def _require(self, w3: Any, c: Any, interface_id: Optional[str], *signatures: str) -> None:
        if interface_id and self._supports_interface(c, interface_id):
            return
        if not self._bytecode_has(w3, c, *signatures):
            raise UnsupportedContract(c.address, "+".join(signatures))

    def _call(self, what: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except (RpcError, UnsupportedContract):
            raise
        except Exception as e:
            log.warning(
                "rpc_call_failed",
                extra={"extra": {"call": what, "error_type": type(e).__name__, "message": str(e)}},
            )
            raise RpcError(f"rpc_call_failed: {what}: {e}", cause=e) from e

    # -- operations ---------------------------------------------------------

    def get_contract_name(self, source: str, kind: str, contract: str) -> str:
        self._require_erc721(kind, contract)
        w3 = self._web3(source)
        c = self._contract(w3, contract)
        self._require(w3, c, ERC721_METADATA_INTERFACE_ID, SIG_NAME)
        return str(self._call("name", lambda: c.functions.name().call()))

    def get_total_supply(self, source: str, kind: str, contract: str) -> int:
        self._require_erc721(kind, contract)
        w3 = self._web3(source)
        c = self._contract(w3, contract)
        self._require(w3, c, ERC721_ENUMERABLE_INTERFACE_ID, SIG_TOTAL_SUPPLY)
        return int(self._call("totalSupply", lambda: c.functions.totalSupply().call()))

    def get_token_ids(self, source: str, kind: str, contract: str) -> Set[str]:
        self._require_erc721(kind, contract)
        w3 = self._web3(source)
        c = self._contract(w3, contract)
        self._require(w3, c, ERC721_ENUMERABLE_INTERFACE_ID, SIG_TOTAL_SUPPLY, SIG_TOKEN_BY_INDEX)

        total = int(self._call("totalSupply", lambda: c.functions.totalSupply().call()))
        ids: Set[str] = set()
        for i in range(total):
            token_id = self._call("tokenByIndex", lambda i=i: c.functions.tokenByIndex(i).call())
            ids.add(str(int(token_id)))
        log.info(
            "token_ids_enumerated",
            extra={"extra": {"source": source, "contract": contract, "total_supply": total, "ids": len(ids)}},
        )
        return ids

    def token_uri(self, source: str, contract: str, token_id: str) -> str:
        w3 = self._web3(source)
        c = self._contract(w3, contract)
        self._require(w3, c, ERC721_METADATA_INTERFACE_ID, SIG_TOKEN_URI)
        tid = _as_uint(token_id)
        return str(self._call("tokenURI", lambda: c.functions.tokenURI(tid).call()) or "")

    def owner_of(self, source: str, contract: str, token_id: str) -> Optional[str]:
        """Owner address, or None when the token is not minted (reverted call)."""
        w3 = self._web3(source)
        c = self._contract(w3, contract)
        self._require(w3, c, ERC721_INTERFACE_ID, SIG_OWNER_OF)
        tid = _as_uint(token_id)
        try:
            owner = c.functions.ownerOf(tid).call()
        except ContractLogicError:
            return None
        except Exception as e:
            raise RpcError(f"rpc_call_failed: ownerOf: {e}", cause=e) from e
        if not owner or str(owner).lower() == ZERO_ADDRESS:
            return None
        return str(owner)

    def contract_owner(self, source: str, contract: str) -> Optional[str]:
        """Ownable owner(), or None when the contract has no owner function."""
        w3 = self._web3(source)
        c = self._contract(w3, contract)
        try:
            self._require(w3, c, None, SIG_OWNER)
        except UnsupportedContract:
            return None
        owner = self._call("owner", lambda: c.functions.owner().call())
        if not owner or str(owner).lower() == ZERO_ADDRESS:
            return None
        return str(owner)

    def is_approved_for_all(self, source: str, contract: str, owner: str, operator: str) -> bool:
        w3 = self._web3(source)
        c = self._contract(w3, contract)
        self._require(w3, c, ERC721_INTERFACE_ID, SIG_IS_APPROVED_FOR_ALL)
        return bool(
            self._call(
                "isApprovedForAll",
                lambda: c.functions.isApprovedForAll(
                    Web3.to_checksum_address(owner), Web3.to_checksum_address(operator)
                ).call(),
            )
        )
