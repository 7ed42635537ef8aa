"""
Level Schema Registry

RESPONSIBILITY: Authoritative, versioned table of per-level field
requirements, token budgets and default cache lifetimes.
ALLOWED INPUTS: Level numbers
OUTPUTS: TokenBudget, LevelFields, FieldSpec lookups

WHAT THIS LAYER MUST NOT DO:
============================
- Mutate its table after construction
- Inspect payloads (that is the validator's job)
- Raise on unknown levels (they resolve to an empty, zero-budget entry)

CUMULATIVE EXTENSION:
=====================
A level "extends" the previous one structurally: its required field set
is the previous level's required set plus the fields it introduces.
There is no class hierarchy; levels are rows in a table.
"""

from __future__ import annotations
from collections.abc import Mapping as MappingABC, Sequence as SequenceABC
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
import math
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Tuple, Union

from ..contracts.levels import METADATA_KEY, PROTOCOL_VERSION, is_known_level


Number = Union[int, float]


# =============================================================================
# FIELD KINDS (structural typing)
# =============================================================================

class FieldKind(Enum):
    """
    Declared shape of a payload field.

    Matching is structural: any Mapping is a MAPPING, any non-text
    Sequence is a SEQUENCE, regardless of concrete class.
    """
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SEQUENCE = "sequence"
    MAPPING = "mapping"

    def matches(self, value: object) -> bool:
        if self is FieldKind.STRING:
            return isinstance(value, str)
        if self is FieldKind.BOOLEAN:
            return isinstance(value, bool)
        if self is FieldKind.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if self is FieldKind.SEQUENCE:
            return isinstance(value, SequenceABC) and not isinstance(value, (str, bytes, bytearray))
        return isinstance(value, MappingABC)


@dataclass(frozen=True)
class FieldSpec:
    """A named payload field and its declared kind."""
    name: str
    kind: FieldKind


# =============================================================================
# BUDGETS
# =============================================================================

class BudgetStatus(Enum):
    UNDER = "under"
    WITHIN = "within"
    OVER = "over"


@dataclass(frozen=True)
class TokenBudget:
    """
    Expected payload size at a level.

    ``min = max(0, target - variance)``; ``max = target + variance``.
    Unbounded levels carry ``math.inf`` for target and max.
    """
    min: Number
    target: Number
    max: Number

    @staticmethod
    def from_target(target: Number, variance: Number) -> TokenBudget:
        if math.isinf(target):
            return TokenBudget(min=max(0, target - variance), target=target, max=math.inf)
        return TokenBudget(min=max(0, target - variance), target=target, max=target + variance)

    @property
    def is_bounded(self) -> bool:
        return not math.isinf(self.max)

    @property
    def is_empty(self) -> bool:
        return self.min == 0 and self.target == 0 and self.max == 0

    def status(self, token_count: Number) -> BudgetStatus:
        """Classify a measured token count. Unbounded budgets accept any count."""
        if not self.is_bounded:
            return BudgetStatus.WITHIN
        if token_count < self.min:
            return BudgetStatus.UNDER
        if token_count > self.max:
            return BudgetStatus.OVER
        return BudgetStatus.WITHIN

    def to_dict(self) -> dict:
        return {
            'min': None if math.isinf(self.min) else self.min,
            'target': None if math.isinf(self.target) else self.target,
            'max': None if math.isinf(self.max) else self.max,
        }


ZERO_BUDGET = TokenBudget(min=0, target=0, max=0)


# =============================================================================
# LEVEL SCHEMAS
# =============================================================================

@dataclass(frozen=True)
class LevelSchema:
    """
    Static record for one level.

    ``required``/``optional`` list only the fields INTRODUCED at this
    level; cumulative sets are computed by the registry.
    """
    level: int
    name: str
    required: Tuple[FieldSpec, ...]
    target: Number
    variance: Number
    ttl_seconds: int
    optional: Tuple[FieldSpec, ...] = field(default_factory=tuple)

    @property
    def budget(self) -> TokenBudget:
        return TokenBudget.from_target(self.target, self.variance)


@dataclass(frozen=True)
class LevelFields:
    """Cumulative field names allowed at a level."""
    required: FrozenSet[str]
    optional: FrozenSet[str]

    @property
    def allowed(self) -> FrozenSet[str]:
        return self.required | self.optional


EMPTY_FIELDS = LevelFields(required=frozenset(), optional=frozenset())


def _f(name: str, kind: FieldKind) -> FieldSpec:
    return FieldSpec(name=name, kind=kind)


S, B, SEQ, MAP = (
    FieldKind.STRING, FieldKind.BOOLEAN, FieldKind.SEQUENCE, FieldKind.MAPPING,
)

DEFAULT_LEVEL_SCHEMAS: Tuple[LevelSchema, ...] = (
    LevelSchema(0, "capabilities", (_f(METADATA_KEY, MAP), _f("capabilities", SEQ)),
                target=20, variance=10, ttl_seconds=86400),
    LevelSchema(1, "identity", (_f("contentType", S), _f("title", S), _f("language", S)),
                target=50, variance=25, ttl_seconds=86400,
                # length is declared by the record but not enforced
                optional=(_f("length", MAP), _f("createdAt", S), _f("author", S), _f("description", S))),
    LevelSchema(2, "navigation", (_f("outline", SEQ),),
                target=100, variance=50, ttl_seconds=3600,
                optional=(_f("hasTimeline", B), _f("phases", SEQ))),
    LevelSchema(3, "structure", (_f("units", SEQ),),
                target=200, variance=100, ttl_seconds=3600,
                optional=(_f("topics", SEQ), _f("entities", SEQ), _f("decisions", SEQ))),
    LevelSchema(4, "summaries", (_f("summaries", MAP), _f("keyFacts", SEQ)),
                target=400, variance=200, ttl_seconds=3600,
                optional=(_f("keyPoints", SEQ), _f("actionItems", SEQ))),
    LevelSchema(5, "contents", (_f("contents", MAP),),
                target=800, variance=400, ttl_seconds=1800),
    LevelSchema(6, "schemas", (_f("schemas", SEQ),),
                target=1500, variance=500, ttl_seconds=1800),
    LevelSchema(7, "complete", (_f("data", MAP),),
                target=math.inf, variance=0, ttl_seconds=1800),
    LevelSchema(8, "media", (_f("media", SEQ),),
                target=200, variance=100, ttl_seconds=3600),
    LevelSchema(9, "media_descriptions", (_f("mediaDescriptions", MAP),),
                target=1000, variance=500, ttl_seconds=3600),
)


# =============================================================================
# REGISTRY
# =============================================================================

class LevelSchemaRegistry:
    """
    Read-only lookup over a table of LevelSchema rows.

    Process-wide and immutable after construction. Deployments needing
    different budgets build a new registry with ``with_overrides``.
    """

    def __init__(
        self,
        schemas: Iterable[LevelSchema] = DEFAULT_LEVEL_SCHEMAS,
        version: str = PROTOCOL_VERSION
    ):
        table: Dict[int, LevelSchema] = {}
        for schema in schemas:
            if not is_known_level(schema.level):
                raise ValueError(f"schema level out of range: {schema.level!r}")
            if schema.level in table:
                raise ValueError(f"duplicate schema for level {schema.level}")
            table[schema.level] = schema
        self._schemas: Mapping[int, LevelSchema] = MappingProxyType(dict(sorted(table.items())))
        self._version = version
        self._fields = MappingProxyType(self._accumulate_fields())
        self._introduced = MappingProxyType({
            spec.name: s.level
            for s in self._schemas.values()
            for spec in s.required + s.optional
        })

    def _accumulate_fields(self) -> Dict[int, LevelFields]:
        cumulative: Dict[int, LevelFields] = {}
        required: FrozenSet[str] = frozenset()
        optional: FrozenSet[str] = frozenset()
        for level, schema in self._schemas.items():
            required = required | {spec.name for spec in schema.required}
            optional = (optional | {spec.name for spec in schema.optional}) - required
            cumulative[level] = LevelFields(required=required, optional=optional)
        return cumulative

    @property
    def version(self) -> str:
        return self._version

    @property
    def levels(self) -> Tuple[int, ...]:
        return tuple(self._schemas)

    def schema_for(self, level: int) -> Optional[LevelSchema]:
        return self._schemas.get(level)

    def budget_for(self, level: int) -> TokenBudget:
        """Budget for a level; unknown levels yield an all-zero budget."""
        schema = self._schemas.get(level)
        if schema is None:
            return ZERO_BUDGET
        return schema.budget

    def fields_for(self, level: int) -> LevelFields:
        """Cumulative fields for a level; unknown levels yield empty sets."""
        return self._fields.get(level, EMPTY_FIELDS)

    def new_required(self, level: int) -> Tuple[FieldSpec, ...]:
        """Required fields introduced at exactly this level."""
        schema = self._schemas.get(level)
        return schema.required if schema else ()

    def level_of(self, field_name: str) -> Optional[int]:
        """Level at which a field is introduced."""
        return self._introduced.get(field_name)

    def ttl_for(self, level: int) -> int:
        """Default cache lifetime in seconds; 0 for unknown levels."""
        schema = self._schemas.get(level)
        return schema.ttl_seconds if schema else 0

    def budget_status(self, level: int, token_count: Number) -> Optional[BudgetStatus]:
        if level not in self._schemas:
            return None
        return self.budget_for(level).status(token_count)

    def with_overrides(
        self,
        budgets: Optional[Mapping[int, Tuple[Number, Number]]] = None,
        ttls: Optional[Mapping[int, int]] = None
    ) -> LevelSchemaRegistry:
        """
        Return a new registry with (target, variance) and TTL overrides.
        The receiver is left untouched.
        """
        budgets = budgets or {}
        ttls = ttls or {}
        unknown = (set(budgets) | set(ttls)) - set(self._schemas)
        if unknown:
            raise ValueError(f"overrides reference unknown levels: {sorted(unknown)}")

        rows = []
        for level, schema in self._schemas.items():
            target, variance = budgets.get(level, (schema.target, schema.variance))
            if variance < 0 or target < 0:
                raise ValueError(f"level {level} budget override must be non-negative")
            ttl = ttls.get(level, schema.ttl_seconds)
            if ttl < 0:
                raise ValueError(f"level {level} ttl override must be non-negative")
            rows.append(LevelSchema(
                level=schema.level,
                name=schema.name,
                required=schema.required,
                optional=schema.optional,
                target=target,
                variance=variance,
                ttl_seconds=ttl,
            ))
        return LevelSchemaRegistry(rows, version=self._version)

    def describe(self) -> Dict[int, dict]:
        """Serializable view of the table, used by the HTTP surface."""
        return {
            level: {
                'name': schema.name,
                'budget': schema.budget.to_dict(),
                'ttlSeconds': schema.ttl_seconds,
                'required': sorted(self.fields_for(level).required),
                'optional': sorted(self.fields_for(level).optional),
            }
            for level, schema in self._schemas.items()
        }


DEFAULT_REGISTRY = LevelSchemaRegistry()


def budget_for(level: int) -> TokenBudget:
    return DEFAULT_REGISTRY.budget_for(level)


def fields_for(level: int) -> LevelFields:
    return DEFAULT_REGISTRY.fields_for(level)


__all__ = [
    "BudgetStatus", "DEFAULT_LEVEL_SCHEMAS", "DEFAULT_REGISTRY", "EMPTY_FIELDS",
    "FieldKind", "FieldSpec", "LevelFields", "LevelSchema", "LevelSchemaRegistry",
    "TokenBudget", "ZERO_BUDGET", "budget_for", "fields_for",
]
