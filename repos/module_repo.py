from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from google.cloud import firestore
from google.cloud.firestore import Client

from models.megadata import Module
from models.schema import COL_MODULES, MODULE_ERC721, MODULE_EXTENDING_COLLECTION, MODULE_EXTENDING_METADATA
from storage.firestore_client import get_firestore_client

ERC721_SCHEMA = {
    "type": "object",
    "required": ["name", "description", "image"],
    "properties": {
        "name": {"type": "string", "description": "The name of the token"},
        "description": {"type": "string", "description": "A description of the token"},
        "image": {"type": "string", "description": "The URI of the token's image"},
        "external_url": {"type": "string", "description": "An external URL for the token"},
        "attributes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["trait_type", "value"],
                "properties": {
                    "trait_type": {"type": "string"},
                    "value": {"oneOf": [{"type": "string"}, {"type": "number"}, {"type": "boolean"}]},
                    "display_type": {
                        "type": "string",
                        "enum": ["string", "number", "boost_number", "boost_percentage", "date"],
                    },
                },
            },
        },
    },
}

EXTENDING_METADATA_SCHEMA = {
    "type": "object",
    "required": ["uri"],
    "properties": {"uri": {"type": "string", "description": "The URI of the metadata to extend"}},
}

EXTENDING_COLLECTION_SCHEMA = {
    "type": "object",
    "required": ["source", "id"],
    "properties": {
        "source": {"type": "string", "description": "Source of the collection, e.g. a blockchain like Ethereum"},
        "id": {"type": "string", "description": "ID of the collection on the source, e.g. the contract address"},
    },
}

DEFAULT_MODULES: Dict[str, Dict] = {
    MODULE_ERC721: {"name": "ERC721", "schema": ERC721_SCHEMA},
    MODULE_EXTENDING_METADATA: {"name": "Extending Metadata", "schema": EXTENDING_METADATA_SCHEMA},
    MODULE_EXTENDING_COLLECTION: {"name": "Extending Collection", "schema": EXTENDING_COLLECTION_SCHEMA},
}


class ModuleRepository:
    def __init__(self, db: Optional[Client] = None):
        self.db = db or get_firestore_client()

    def get_modules(self, module_ids: Iterable[str]) -> List[Module]:
        """Modules in the requested order; unknown ids are dropped."""
        ids = list(dict.fromkeys(str(m) for m in module_ids))
        if not ids:
            return []
        refs = [self.db.collection(COL_MODULES).document(m) for m in ids]
        found: Dict[str, Module] = {}
        for snap in self.db.get_all(refs):
            if snap.exists:
                found[snap.id] = Module(id=snap.id, schema=(snap.to_dict() or {}).get("schema") or {})
        return [found[m] for m in ids if m in found]

    def seed_defaults(self) -> int:
        batch = self.db.batch()
        for module_id, d in DEFAULT_MODULES.items():
            ref = self.db.collection(COL_MODULES).document(module_id)
            batch.set(ref, {**d, "updated_at": firestore.SERVER_TIMESTAMP}, merge=True)
        batch.commit()
        return len(DEFAULT_MODULES)
