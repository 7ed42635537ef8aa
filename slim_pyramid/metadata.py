"""
Metadata and Payload Assembly

Producer-side helpers used by ingestion collaborators: they already hold
the field values (summaries, outlines, units...) and need them stamped
with metadata and certified against the level contract.

The core never counts tokens itself; a token counter is injected.
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from .contracts.base import PayloadContractError, SourceHash, Timestamp
from .contracts.levels import (
    METADATA_KEY, ContentType, SlimMetadata, is_known_level,
)
from .schema import DEFAULT_REGISTRY, LevelSchemaRegistry
from .serialization import canonical_json, to_wire
from .validation import PayloadValidator


TokenCounter = Callable[[str], int]


def compute_source_hash(content: Union[str, bytes]) -> str:
    """SHA-256 hex digest of the source material (UTF-8 for text)."""
    return SourceHash.compute(content).value


def _iso(generated_at: Union[None, str, datetime, Timestamp]) -> str:
    if generated_at is None:
        return Timestamp.now().to_iso()
    if isinstance(generated_at, Timestamp):
        return generated_at.to_iso()
    if isinstance(generated_at, datetime):
        return Timestamp(generated_at).to_iso()
    return generated_at


def create_slim_metadata(
    level: int,
    content_type: Union[ContentType, str],
    source_hash: str,
    token_count: int,
    available_levels: Iterable[int],
    *,
    ttl_seconds: Optional[int] = None,
    generated_at: Union[None, str, datetime, Timestamp] = None,
    registry: Optional[LevelSchemaRegistry] = None
) -> SlimMetadata:
    """
    Create metadata for a new payload.

    ``ttl_seconds`` defaults to the registry's lifetime for the level.
    Raises ValueError when ``level`` is unknown or not in ``available_levels``.
    """
    registry = registry or DEFAULT_REGISTRY
    if ttl_seconds is None and is_known_level(level):
        ttl_seconds = registry.ttl_for(level)
    return SlimMetadata(
        version=registry.version,
        level=level,
        content_type=ContentType(content_type) if isinstance(content_type, str) else content_type,
        generated_at=_iso(generated_at),
        source_hash=source_hash,
        token_count=token_count,
        available_levels=tuple(available_levels),
        ttl_seconds=ttl_seconds,
    )


def measure_tokens(fields: Mapping[str, Any], token_counter: TokenCounter) -> int:
    """Token count of the field values, measured over their canonical JSON."""
    count = token_counter(canonical_json(to_wire(fields)))
    if count < 0:
        raise ValueError("token counter returned a negative count")
    return int(count)


def build_payload(
    level: int,
    fields: Mapping[str, Any],
    *,
    content_type: Union[ContentType, str],
    source_hash: str,
    available_levels: Iterable[int],
    token_counter: TokenCounter,
    ttl_seconds: Optional[int] = None,
    generated_at: Union[None, str, datetime, Timestamp] = None,
    registry: Optional[LevelSchemaRegistry] = None
) -> Dict[str, Any]:
    """
    Assemble and certify one level payload.

    Field values may be contract records (converted to wire dicts) or
    plain data. ``None`` values are dropped. From L1 up, ``contentType``
    defaults to the metadata content type.

    Raises PayloadContractError for fields not allowed at ``level`` or
    when the assembled payload does not conform to ``level``.
    """
    registry = registry or DEFAULT_REGISTRY
    if not is_known_level(level) or level not in registry.levels:
        raise ValueError(f"unknown level: {level!r}")

    allowed = registry.fields_for(level).allowed - {METADATA_KEY}
    unexpected = sorted(set(fields) - allowed)
    if unexpected:
        raise PayloadContractError(f"fields not allowed at level {level}: {unexpected}")

    content_type = ContentType(content_type) if isinstance(content_type, str) else content_type
    body: Dict[str, Any] = {k: to_wire(v) for k, v in fields.items() if v is not None}
    if level >= 1:
        body.setdefault('contentType', content_type.value)

    metadata = create_slim_metadata(
        level,
        content_type,
        source_hash,
        measure_tokens(body, token_counter),
        available_levels,
        ttl_seconds=ttl_seconds,
        generated_at=generated_at,
        registry=registry,
    )
    payload = {METADATA_KEY: metadata.to_dict(), **body}

    report = PayloadValidator(registry).validate(payload, level)
    if not report.conforms:
        detail = "; ".join(e.message for e in report.errors)
        raise PayloadContractError(f"payload does not conform to level {level}: {detail}", report.errors)
    return payload


def build_pyramid(
    levels: Mapping[int, Mapping[str, Any]],
    *,
    content_type: Union[ContentType, str],
    source_hash: str,
    token_counter: TokenCounter,
    publish: Optional[Iterable[int]] = None,
    generated_at: Union[None, str, datetime, Timestamp] = None,
    registry: Optional[LevelSchemaRegistry] = None
) -> Dict[int, Dict[str, Any]]:
    """
    Build a cumulative family of payloads for one content item.

    ``levels`` maps a level to the fields it introduces. The payload for
    level n carries the union of the inputs for every level <= n. Only
    the levels in ``publish`` (default: the keys of ``levels``) are
    built; all of them share ``source_hash`` and ``availableLevels``.
    """
    registry = registry or DEFAULT_REGISTRY
    published = sorted(set(publish if publish is not None else levels))
    if not published:
        raise ValueError("a pyramid needs at least one level")
    # one timestamp for the whole family
    generated_at = _iso(generated_at)

    family: Dict[int, Dict[str, Any]] = {}
    accumulated: Dict[str, Any] = {}
    for level in registry.levels:
        if level > published[-1]:
            break
        accumulated.update(levels.get(level, {}))
        if level in published:
            family[level] = build_payload(
                level,
                dict(accumulated),
                content_type=content_type,
                source_hash=source_hash,
                available_levels=published,
                token_counter=token_counter,
                generated_at=generated_at,
                registry=registry,
            )
    missing = [l for l in published if l not in family]
    if missing:
        raise ValueError(f"cannot publish unknown levels: {missing}")
    return family
