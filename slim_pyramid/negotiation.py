"""
Content Negotiation Helpers

Header conventions used by servers that publish level payloads:

- Request ``Accept``: ``application/slim-pyramid+json; level=<n>``
- Response ``Content-Type``: ``application/slim-pyramid+json; level=<n>; charset=utf-8``
- ``X-Slim-Available-Levels``: comma-separated ascending level list
- ``X-Slim-Token-Count``: measured token count of the served payload
- Cache key: (source hash, level)
"""

from __future__ import annotations
from dataclasses import dataclass
import re
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from .contracts.levels import SlimMetadata
from .schema import DEFAULT_REGISTRY, LevelSchemaRegistry


SLIM_MIME_TYPE = "application/slim-pyramid+json"

HEADER_AVAILABLE_LEVELS = "X-Slim-Available-Levels"
HEADER_TOKEN_COUNT = "X-Slim-Token-Count"
HEADER_LEVEL = "X-Slim-Level"

_ACCEPT_LEVEL = re.compile(r"application/slim-pyramid\+json;\s*level=(\d+)")


def parse_accept_header(accept: Optional[str]) -> Optional[int]:
    """Level requested through an Accept header, or None if none is specified."""
    if not accept:
        return None
    match = _ACCEPT_LEVEL.search(accept)
    if match:
        return int(match.group(1))
    return None


def generate_content_type(level: int) -> str:
    """Content-Type header value for a payload at ``level``."""
    return f"{SLIM_MIME_TYPE}; level={level}; charset=utf-8"


def format_available_levels(levels: Iterable[int]) -> str:
    return ",".join(str(l) for l in sorted(set(levels)))


def parse_available_levels(header: str) -> tuple:
    """Inverse of ``format_available_levels``. Raises ValueError on junk."""
    parts = [p.strip() for p in header.split(",") if p.strip()]
    return tuple(sorted({int(p) for p in parts}))


def response_headers(metadata: Union[SlimMetadata, Mapping[str, Any]]) -> Dict[str, str]:
    """
    Informative response headers for a served payload.

    Accepts a SlimMetadata or the wire metadata block of a payload.
    """
    block = metadata.to_dict() if isinstance(metadata, SlimMetadata) else metadata
    level = block["level"]
    headers = {
        "Content-Type": generate_content_type(level),
        HEADER_LEVEL: str(level),
        HEADER_AVAILABLE_LEVELS: format_available_levels(block.get("availableLevels") or (level,)),
    }
    if block.get("tokenCount") is not None:
        headers[HEADER_TOKEN_COUNT] = str(block["tokenCount"])
    return headers


@dataclass(frozen=True)
class CacheKey:
    """Cache identity of one level of one content item."""
    source_hash: str
    level: int

    def __str__(self) -> str:
        return f"slim:{self.source_hash}:{self.level}"


def cache_key(source_hash: str, level: int) -> CacheKey:
    return CacheKey(source_hash=source_hash, level=level)


def cache_ttl(
    metadata: Mapping,
    registry: Optional[LevelSchemaRegistry] = None
) -> int:
    """
    Cache lifetime for a payload's metadata block (wire mapping).

    ``ttlSeconds`` overrides the level default from the registry.
    """
    registry = registry or DEFAULT_REGISTRY
    ttl = metadata.get("ttlSeconds")
    if ttl is not None:
        return int(ttl)
    return registry.ttl_for(metadata.get("level"))
