from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from chain.errors import RpcConfigError, RpcError, UnsupportedContract
from chain.rpc_gateway import ChainGateway
from config.settings import settings
from models.megadata import Module, ValidationResult
from models.schema import MODULE_EXTENDING_COLLECTION, MODULE_EXTENDING_METADATA

log = logging.getLogger("megadata.permissions.validator")

ModuleRef = Union[str, Module]

ERR_METADATA_REQUIRES_COLLECTION = (
    f"{MODULE_EXTENDING_METADATA} module requires {MODULE_EXTENDING_COLLECTION} module to be present"
)
ERR_COLLECTION_NOT_AUTHORIZED = "not authorized to modify this collection"
ERR_TOKEN_NOT_AUTHORIZED = "not authorized to modify this token"
ERR_TOKEN_NOT_OWNED = "token does not exist or is not owned by anyone"


class ValidationFailure(Exception):
    """Authorization denied. Surfaced to the caller as a rejection, never retried."""

    def __init__(self, result: ValidationResult):
        super().__init__(result.error or "validation_failed")
        self.result = result


class PermissionCheckError(Exception):
    """A module check could not be completed (unexpected RPC failure)."""


class ModuleKind(Enum):
    EXTENDING_COLLECTION = MODULE_EXTENDING_COLLECTION
    EXTENDING_METADATA = MODULE_EXTENDING_METADATA
    UNKNOWN = "unknown"

    @classmethod
    def of(cls, module: ModuleRef) -> "ModuleKind":
        module_id = module.id if isinstance(module, Module) else str(module)
        if module_id == MODULE_EXTENDING_COLLECTION:
            return cls.EXTENDING_COLLECTION
        if module_id == MODULE_EXTENDING_METADATA:
            return cls.EXTENDING_METADATA
        return cls.UNKNOWN


def _split_csv(v: str) -> List[str]:
    return [x.strip() for x in (v or "").split(",") if x.strip()]


def _matches_any(address: Optional[str], identities: Sequence[str]) -> bool:
    if not address:
        return False
    a = address.lower()
    return any(a == i.lower() for i in identities)


def _is_uint(token_id: Any) -> bool:
    return str(token_id).strip().isdigit()


class ModuleValidator:
    """Decides whether caller identities may write token data under the attached modules.

    Only the two extending modules carry authorization rules; every other
    module id is skipped. Checks run in attachment order and the first
    failing module decides the result.
    """

    def __init__(self, gateway: Optional[ChainGateway] = None, admin_list: Optional[Iterable[str]] = None):
        self.gateway = gateway or ChainGateway()
        admins = admin_list if admin_list is not None else _split_csv(settings.ADMIN_LIST)
        self.admin_list = {a.lower() for a in admins}

    def validate(
        self,
        modules: Sequence[ModuleRef],
        token_id: str,
        metadata: Dict[str, Any],
        caller_identities: Sequence[str],
    ) -> ValidationResult:
        kinds = [ModuleKind.of(m) for m in modules]
        if ModuleKind.EXTENDING_METADATA in kinds and ModuleKind.EXTENDING_COLLECTION not in kinds:
            return ValidationResult.fail(ERR_METADATA_REQUIRES_COLLECTION)

        metadata = metadata or {}
        for kind in kinds:
            if kind is ModuleKind.EXTENDING_COLLECTION:
                result = self._check_extending_collection(token_id, metadata, caller_identities)
            elif kind is ModuleKind.EXTENDING_METADATA:
                result = self._check_extending_metadata(token_id, metadata, caller_identities)
            else:
                continue
            if not result.is_valid:
                log.info(
                    "module_validation_failed",
                    extra={"extra": {"module": kind.value, "token_id": token_id, "error": result.error}},
                )
                return result
        return ValidationResult.ok()

    def require_valid(
        self,
        modules: Sequence[ModuleRef],
        token_id: str,
        metadata: Dict[str, Any],
        caller_identities: Sequence[str],
    ) -> None:
        result = self.validate(modules, token_id, metadata, caller_identities)
        if not result.is_valid:
            raise ValidationFailure(result)

    def _is_admin(self, identities: Sequence[str]) -> bool:
        return any(i.lower() in self.admin_list for i in identities)

    def _source_and_contract(self, metadata: Dict[str, Any]) -> tuple[str, str, Optional[ValidationResult]]:
        source = str(metadata.get("source") or "").strip().lower()
        contract = str(metadata.get("id") or "").strip()
        if not source:
            return source, contract, ValidationResult.fail("source is required")
        if not contract:
            return source, contract, ValidationResult.fail("id is required")
        return source, contract, None

    def _check_extending_collection(
        self, token_id: str, metadata: Dict[str, Any], identities: Sequence[str]
    ) -> ValidationResult:
        if self._is_admin(identities):
            return ValidationResult.ok()

        source, contract, missing = self._source_and_contract(metadata)
        if missing:
            return missing

        try:
            if _matches_any(self.gateway.contract_owner(source, contract), identities):
                return ValidationResult.ok()
            if _is_uint(token_id) and _matches_any(self.gateway.owner_of(source, contract, token_id), identities):
                return ValidationResult.ok()
        except RpcConfigError as e:
            return ValidationResult.fail(f"no rpc endpoint for source {source}: {e}")
        except UnsupportedContract:
            return ValidationResult.fail(ERR_COLLECTION_NOT_AUTHORIZED)
        except RpcError as e:
            raise PermissionCheckError(f"Failed to validate module {MODULE_EXTENDING_COLLECTION}: {e}") from e
        return ValidationResult.fail(ERR_COLLECTION_NOT_AUTHORIZED)

    def _check_extending_metadata(
        self, token_id: str, metadata: Dict[str, Any], identities: Sequence[str]
    ) -> ValidationResult:
        if self._is_admin(identities):
            return ValidationResult.ok()

        source, contract, missing = self._source_and_contract(metadata)
        if missing:
            return missing

        try:
            owner = self.gateway.owner_of(source, contract, token_id)
            if owner is None:
                return ValidationResult.fail(ERR_TOKEN_NOT_OWNED)
            if _matches_any(owner, identities):
                return ValidationResult.ok()
            for operator in identities:
                if self.gateway.is_approved_for_all(source, contract, owner, operator):
                    return ValidationResult.ok()
        except (RpcError, UnsupportedContract, ValueError):
            return ValidationResult.fail(ERR_TOKEN_NOT_OWNED)
        return ValidationResult.fail(ERR_TOKEN_NOT_AUTHORIZED)
