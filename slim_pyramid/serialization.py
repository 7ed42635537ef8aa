import json
from collections.abc import Mapping
from datetime import datetime, date
from enum import Enum
from typing import Any


def to_wire(obj: Any) -> Any:
    """
    Convert contract records into plain JSON-compatible structures.

    RULES:
    1. Records with ``to_dict`` use their wire field names.
    2. Enums become their ``.value``.
    3. Dates become ISO 8601 strings.
    4. Sets become sorted lists (determinism); tuples become lists.
    """
    if hasattr(obj, "to_dict"):
        return to_wire(obj.to_dict())
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Mapping):
        return {str(k): to_wire(v) for k, v in obj.items()}
    if isinstance(obj, (set, frozenset)):
        return sorted(to_wire(v) for v in obj)
    if isinstance(obj, (list, tuple)):
        return [to_wire(v) for v in obj]
    return obj


class SlimJSONEncoder(json.JSONEncoder):
    """
    JSON Encoder that prioritizes Fidelity over Flexibility.

    Anything ``json`` cannot encode natively goes through ``to_wire``;
    objects it still cannot represent raise TypeError as usual.
    """

    def default(self, obj: Any) -> Any:
        converted = to_wire(obj)
        if converted is obj:
            return super().default(obj)
        return converted


def canonical_json(obj: Any) -> str:
    """Compact, key-sorted JSON used for measuring and hashing payloads."""
    return json.dumps(
        obj,
        cls=SlimJSONEncoder,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
