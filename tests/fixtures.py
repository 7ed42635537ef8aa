"""
Shared Test Fixtures

Versioned, hashable fixtures for deterministic testing.
All fixtures are explicit - no random generation.
"""

import hashlib
from typing import Any, Dict, Iterable, Optional

from slim_pyramid.contracts.levels import METADATA_KEY, PROTOCOL_VERSION


# =============================================================================
# FIXED IDENTITIES (deterministic)
# =============================================================================

GENERATED_AT = "2026-01-01T10:00:00Z"
SOURCE_HASH = hashlib.sha256(b"fixture article: progressive disclosure").hexdigest()
OTHER_SOURCE_HASH = hashlib.sha256(b"fixture article: something else").hexdigest()


def char_tokens(text: str) -> int:
    """Deterministic stand-in token counter: four characters per token."""
    return len(text) // 4


# =============================================================================
# LEVEL FIELDS (what each level introduces)
# =============================================================================

LEVEL_FIELDS: Dict[int, Dict[str, Any]] = {
    0: {
        "capabilities": ["query", "summarize", "navigate"],
    },
    1: {
        "contentType": "article",
        "title": "Progressive Disclosure for Agents",
        "language": "en",
        "length": {"value": 1200, "unit": "words"},
    },
    2: {
        "outline": [
            {"id": "s1", "title": "Introduction", "level": 1},
            {"id": "s2", "title": "Design", "level": 1,
             "children": [{"id": "s2a", "title": "Budgets", "level": 2}]},
        ],
    },
    3: {
        "units": [
            {"id": "s1", "type": "section", "tokenEstimate": 120},
            {"id": "s2", "type": "section", "tokenEstimate": 300},
            {"id": "s2a", "type": "section", "parentId": "s2", "tokenEstimate": 90},
        ],
        "topics": ["context windows", "caching"],
    },
    4: {
        "summaries": {"s1": "Why levels exist.", "s2": "How levels are budgeted."},
        "keyFacts": ["Ten levels", "Levels are cumulative"],
        "keyPoints": [{"point": "Budgets bound size", "unitId": "s2a", "importance": "high"}],
    },
    5: {
        "contents": {
            "s1": "Agents rarely need the whole document.",
            "s2": "Each level has a target size.",
            "s2a": "Targets carry a variance.",
        },
    },
    6: {
        "schemas": [
            {"id": "t1", "type": "table", "title": "Budgets",
             "definition": {"columns": ["level", "target"], "rowCount": 2}},
        ],
    },
    7: {
        "data": {"t1": {"type": "table", "rows": [[0, 20], [1, 50]]}},
    },
    8: {
        "media": [{"id": "m1", "type": "image", "title": "Pyramid", "unitId": "s2"}],
    },
    9: {
        "mediaDescriptions": {"m1": {"description": "A ten-step pyramid diagram."}},
    },
}

# In-budget token counts per level (L7 is unbounded).
TOKEN_COUNTS = {0: 20, 1: 50, 2: 100, 3: 200, 4: 400, 5: 800, 6: 1500, 7: 5000, 8: 200, 9: 1000}


def make_metadata(
    level: int,
    available: Optional[Iterable[int]] = None,
    source_hash: str = SOURCE_HASH,
    **overrides: Any
) -> Dict[str, Any]:
    """Wire metadata block for ``level``."""
    metadata = {
        "version": PROTOCOL_VERSION,
        "level": level,
        "contentType": "article",
        "generatedAt": GENERATED_AT,
        "sourceHash": source_hash,
        "tokenCount": TOKEN_COUNTS.get(level, 0),
        "availableLevels": sorted(available) if available is not None else [level],
    }
    metadata.update(overrides)
    return metadata


def make_payload(
    level: int,
    available: Optional[Iterable[int]] = None,
    source_hash: str = SOURCE_HASH,
    **metadata_overrides: Any
) -> Dict[str, Any]:
    """A plain-dict payload that conforms to ``level`` (and every level below)."""
    payload: Dict[str, Any] = {
        METADATA_KEY: make_metadata(level, available, source_hash, **metadata_overrides),
    }
    for current in range(level + 1):
        payload.update(LEVEL_FIELDS[current])
    return payload


def make_family(levels: Iterable[int], source_hash: str = SOURCE_HASH) -> list:
    """Consistent family: every payload advertises the same level set."""
    levels = sorted(levels)
    return [make_payload(level, levels, source_hash) for level in levels]
