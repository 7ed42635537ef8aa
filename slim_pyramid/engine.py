"""
Engine Orchestration Module

Unified serving facade over the schema registry, validator and selector.

DESIGN PRINCIPLES:
==================
1. A family of payloads is certified as a whole before it is servable
2. Selection is delegated to the pure selector; the engine only looks up
3. Operations return explicit Result values; errors are data
4. All publications and servings are recorded by observability
"""

from __future__ import annotations
import copy
from dataclasses import dataclass
import json
import logging
from pathlib import Path
from types import MappingProxyType
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .config import PyramidConfig
from .contracts.base import Error, ErrorCode, Result
from .contracts.events import AuditEventType
from .contracts.levels import METADATA_KEY, LevelRequest
from .negotiation import CacheKey, cache_key, cache_ttl, response_headers
from .observability import ObservabilityEngine
from .schema import LevelSchemaRegistry
from .selection import LevelSelector, Selection
from .validation import PayloadValidator


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServedLevel:
    """Outcome of serving one content item for one request."""
    source_hash: str
    level: int
    payload: Mapping[str, Any]
    headers: Mapping[str, str]
    cache_key: CacheKey
    ttl_seconds: int
    selection: Selection


class SlimPyramidEngine:
    """
    Serving engine for progressive-disclosure payload families.

    LAYER FLOW:
    ===========
    publish:  payloads -> validator (per payload + family checks) -> table
    serve:    source hash + LevelRequest -> selector -> table lookup

    The payload table is in-process only. Payloads are copied on publish
    so callers cannot mutate what is served.
    """

    def __init__(
        self,
        config: Optional[PyramidConfig] = None,
        registry: Optional[LevelSchemaRegistry] = None,
        observability: Optional[ObservabilityEngine] = None
    ):
        self._config = config or PyramidConfig()
        self._registry = registry or self._config.build_registry()
        self._validator = PayloadValidator(self._registry, self._config.validator_config())
        self._selector = LevelSelector(self._registry)
        self._observability = observability or ObservabilityEngine()
        self._families: Dict[str, Mapping[int, Mapping[str, Any]]] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def registry(self) -> LevelSchemaRegistry:
        return self._registry

    @property
    def validator(self) -> PayloadValidator:
        return self._validator

    @property
    def selector(self) -> LevelSelector:
        return self._selector

    @property
    def observability(self) -> ObservabilityEngine:
        return self._observability

    def content_hashes(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(sorted(self._families))

    def available_levels(self, source_hash: str) -> Tuple[int, ...]:
        with self._lock:
            family = self._families.get(source_hash, {})
            return tuple(sorted(family))

    def get_payload(self, source_hash: str, level: int) -> Optional[Mapping[str, Any]]:
        with self._lock:
            return self._families.get(source_hash, {}).get(level)

    # =========================================================================
    # PUBLICATION
    # =========================================================================

    def publish(self, payloads: Iterable[Mapping[str, Any]]) -> Result:
        """
        Certify and store a family of payloads for one content item.

        On success the value is the tuple of published levels. On failure
        nothing is stored and any previous family is left in place.
        """
        payloads = list(payloads)
        error = self._family_error(payloads)
        if error is not None:
            source_hash = self._source_hash_of(payloads[0]) if payloads else None
            nonconforming = error.code is ErrorCode.PAYLOAD_NONCONFORMING
            logger.warning("Rejected payload family %s: %s", source_hash, error.message)
            self._observability.log_audit(
                action="publish",
                event_type=AuditEventType.VALIDATION if nonconforming else AuditEventType.PUBLICATION,
                entity_id=source_hash,
                outcome="rejected",
                details=error.code.name,
                layer="validation" if nonconforming else "engine",
            )
            self._observability.collect_metric(
                "publish_rejections_total", 1, {"error_code": error.code.name}
            )
            return Result.failure(error)

        source_hash = payloads[0][METADATA_KEY]['sourceHash']
        family = {
            p[METADATA_KEY]['level']: MappingProxyType(copy.deepcopy(dict(p)))
            for p in payloads
        }
        with self._lock:
            replaced = source_hash in self._families
            self._families[source_hash] = MappingProxyType(dict(sorted(family.items())))

        levels = tuple(sorted(family))
        logger.info("Published %s levels %s%s", source_hash, list(levels), " (replaced)" if replaced else "")
        self._observability.log_audit(
            action="publish",
            event_type=AuditEventType.PUBLICATION,
            entity_id=source_hash,
            details=",".join(str(l) for l in levels),
        )
        self._observability.collect_metric("payloads_published_total", len(levels))
        return Result.success(levels)

    def _source_hash_of(self, payload: object) -> Optional[str]:
        if self._validator.declared_level(payload) is None:
            return None
        return payload[METADATA_KEY]['sourceHash']

    def _family_error(self, payloads: List[Mapping[str, Any]]) -> Optional[Error]:
        if not payloads:
            return Error(ErrorCode.EMPTY_FAMILY, "a family needs at least one payload")

        levels: List[int] = []
        for index, payload in enumerate(payloads):
            declared = self._validator.declared_level(payload)
            if declared is None or not self._validator.conforms_to(payload, declared):
                report = self._validator.validate(payload, declared if declared is not None else 0)
                reasons = "; ".join(e.message for e in report.errors)
                return Error(
                    ErrorCode.PAYLOAD_NONCONFORMING,
                    f"payload #{index} does not conform to its declared level {declared!r}: {reasons}",
                    level=declared,
                ).with_context("index", str(index))
            levels.append(declared)

        hashes = {p[METADATA_KEY]['sourceHash'] for p in payloads}
        if len(hashes) != 1:
            return Error(ErrorCode.FAMILY_INCONSISTENT,
                         f"payloads carry different source hashes: {sorted(hashes)}")

        if len(set(levels)) != len(levels):
            return Error(ErrorCode.FAMILY_INCONSISTENT, f"duplicate levels in family: {sorted(levels)}")

        published = sorted(levels)
        for payload in payloads:
            advertised = payload[METADATA_KEY].get('availableLevels')
            try:
                advertised_levels = sorted(set(advertised))
            except TypeError:
                advertised_levels = None
            if advertised_levels != published:
                return Error(
                    ErrorCode.FAMILY_INCONSISTENT,
                    f"level {payload[METADATA_KEY]['level']} advertises availableLevels "
                    f"{advertised!r} but the family publishes {published}",
                    level=payload[METADATA_KEY]['level'],
                )
        return None

    def forget(self, source_hash: str) -> bool:
        """Drop a content item. Returns whether it was present."""
        with self._lock:
            removed = self._families.pop(source_hash, None) is not None
        if removed:
            self._observability.log_audit(
                action="forget",
                event_type=AuditEventType.PUBLICATION,
                entity_id=source_hash,
            )
        return removed

    def load_directory(self, directory: Path) -> Dict[str, Result]:
        """
        Publish every ``*.json`` payload file in ``directory``, grouped by
        source hash. Unreadable files are logged and skipped.
        """
        groups: Dict[str, List[Mapping[str, Any]]] = {}
        for path in sorted(Path(directory).glob("*.json")):
            try:
                with path.open(encoding="utf-8") as handle:
                    payload = json.load(handle)
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Skipping unreadable payload file %s: %s", path, exc)
                continue
            source_hash = self._source_hash_of(payload)
            if source_hash is None:
                logger.warning("Skipping %s: no usable %s metadata block", path, METADATA_KEY)
                continue
            groups.setdefault(source_hash, []).append(payload)

        return {source_hash: self.publish(family) for source_hash, family in groups.items()}

    # =========================================================================
    # SERVING
    # =========================================================================

    def serve(self, source_hash: str, request: Optional[LevelRequest] = None) -> Result:
        """Select and return the payload to serve for ``request``."""
        request = request or LevelRequest()
        with self._lock:
            family = self._families.get(source_hash)

        if not family:
            self._observability.log_audit(
                action="serve",
                event_type=AuditEventType.SERVING,
                entity_id=source_hash,
                outcome="not_found",
            )
            return Result.failure(Error(
                ErrorCode.CONTENT_NOT_FOUND,
                f"no content published for source hash {source_hash!r}",
            ))

        selection = self._selector.explain(family.keys(), request)
        payload = family[selection.level]
        slim = payload[METADATA_KEY]

        self._observability.log_audit(
            action="select",
            event_type=AuditEventType.SELECTION,
            entity_id=source_hash,
            details=f"level={selection.level} basis={selection.basis.value}",
            layer="selection",
        )
        self._observability.collect_metric("levels_served_total", 1, {"level": str(selection.level)})
        if selection.is_fallback:
            self._observability.collect_metric(
                "level_fallbacks_total", 1, {"basis": selection.basis.value}
            )

        return Result.success(ServedLevel(
            source_hash=source_hash,
            level=selection.level,
            payload=payload,
            headers=response_headers(slim),
            cache_key=cache_key(source_hash, selection.level),
            ttl_seconds=cache_ttl(slim, self._registry),
            selection=selection,
        ))
