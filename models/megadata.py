from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from models.schema import COLLECTION_KIND_DEFAULT, COLLECTION_KIND_EXTERNAL, SYNC_STATUS_PENDING


@dataclass
class Collection:
    id: int
    account_id: str
    name: str = ""
    kind: str = COLLECTION_KIND_DEFAULT
    published: bool = False
    # External collections only
    source: Optional[str] = None
    external_id: Optional[str] = None
    contract_type: Optional[str] = None
    last_checked_at: Optional[int] = None

    @property
    def is_external(self) -> bool:
        return self.kind == COLLECTION_KIND_EXTERNAL

    @classmethod
    def from_doc(cls, collection_id: int, d: Dict[str, Any]) -> "Collection":
        last = d.get("last_checked_at")
        return cls(
            id=int(collection_id),
            account_id=str(d.get("account_id") or ""),
            name=str(d.get("name") or ""),
            kind=str(d.get("kind") or COLLECTION_KIND_DEFAULT),
            published=bool(d.get("published", False)),
            source=d.get("source"),
            external_id=d.get("external_id"),
            contract_type=d.get("contract_type"),
            last_checked_at=int(last) if last is not None else None,
        )

    def to_doc(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "id": self.id,
            "account_id": self.account_id,
            "name": self.name,
            "kind": self.kind,
            "published": self.published,
        }
        if self.is_external:
            doc.update({
                "source": self.source,
                "external_id": self.external_id,
                "contract_type": self.contract_type,
                "last_checked_at": self.last_checked_at,
            })
        return doc


@dataclass
class Token:
    collection_id: int
    id: str
    data: Dict[str, Any] = field(default_factory=dict)
    modules: List[str] = field(default_factory=list)
    published: bool = False
    sync_status: str = SYNC_STATUS_PENDING

    @classmethod
    def from_doc(cls, collection_id: int, token_id: str, d: Dict[str, Any]) -> "Token":
        return cls(
            collection_id=int(collection_id),
            id=str(token_id),
            data=dict(d.get("data") or {}),
            modules=list(d.get("modules") or []),
            published=bool(d.get("published", False)),
            sync_status=str(d.get("sync_status") or SYNC_STATUS_PENDING),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "collection_id": self.collection_id,
            "id": self.id,
            "data": self.data,
            "modules": self.modules,
            "published": self.published,
            "sync_status": self.sync_status,
        }


@dataclass(frozen=True)
class Module:
    id: str
    schema: Dict[str, Any] = field(default_factory=dict)

    def property_names(self) -> List[str]:
        props = (self.schema or {}).get("properties")
        if not isinstance(props, dict):
            return []
        return list(props.keys())


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def fail(cls, error: str) -> "ValidationResult":
        return cls(is_valid=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"is_valid": self.is_valid}
        if self.error:
            out["error"] = self.error
        return out
