from __future__ import annotations

from typing import Optional


class RpcError(Exception):
    """Transport or contract-call failure. Recoverable; the caller decides on retry."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class RpcConfigError(RpcError):
    """No usable endpoint pool for the requested network."""


class UnsupportedContract(Exception):
    """The contract lacks a read function the operation needs. Permanent."""

    def __init__(self, contract: str, missing: str):
        super().__init__(f"unsupported_contract: {contract} missing {missing}")
        self.contract = contract
        self.missing = missing
