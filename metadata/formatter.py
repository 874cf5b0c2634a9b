from __future__ import annotations

from typing import Any, Dict, Iterable

from models.megadata import Module


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _ledger_safe_item(item: Any) -> Any:
    # The ledger's value encoding has no floats; non-integer trait values travel as strings.
    if isinstance(item, dict) and "value" in item:
        value = item["value"]
        if isinstance(value, float) and not value.is_integer():
            return {**item, "value": str(value)}
    return item


def format_for_ledger(data: Dict[str, Any], modules: Iterable[Module]) -> Dict[str, Any]:
    """Nest token data under each module id, keeping only that module's declared properties.

    Modules with none of their properties present contribute no key. Output
    key order follows the module list, then the data's own key order.
    """
    data = data or {}
    out: Dict[str, Any] = {}
    for module in modules:
        declared = set(module.property_names())
        if not declared:
            continue
        projected: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in declared or _is_empty(value):
                continue
            if isinstance(value, list):
                projected[key] = [_ledger_safe_item(v) for v in value]
            else:
                projected[key] = value
        if projected:
            out[module.id] = projected
    return out
