"""
Payload Validation Layer

RESPONSIBILITY: Decide whether a value conforms to a level's contract
and compute the highest level a value conforms to.
ALLOWED INPUTS: Arbitrary values (decoded JSON, mappings, anything)
OUTPUTS: bool, Optional[int], ValidationReport, Tuple[Error, ...]

WHAT THIS LAYER MUST NOT DO:
============================
- Raise on malformed input (validation is a predicate, not a gate)
- Mutate or normalize the value it inspects
- Keep state between calls

CUMULATIVE SCAN:
================
Conformance to level n requires conformance to level n-1 first.
Levels are scanned ascending and the scan stops at the first failure;
the level before it is the highest level actually satisfied.

ADVISORY CHECKS:
================
Metadata consistency, referential integrity and budget fit are reported
as warnings. They never change the conformance answer unless
``ValidatorConfig.strict_references`` folds reference checks in.
"""

from __future__ import annotations
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from ..contracts.base import Error, ErrorCode
from ..contracts.levels import METADATA_KEY, is_known_level
from ..schema import (
    BudgetStatus, DEFAULT_REGISTRY, FieldKind, LevelSchemaRegistry,
)


# Metadata fields checked for presence and type by the base check.
_BASE_METADATA: Tuple[Tuple[str, FieldKind], ...] = (
    ('version', FieldKind.STRING),
    ('level', FieldKind.NUMBER),
    ('sourceHash', FieldKind.STRING),
)


@dataclass(frozen=True)
class ValidatorConfig:
    """Validation policy."""
    strict_references: bool = False


@dataclass(frozen=True)
class ValidationReport:
    """
    Diagnostic form of ``conforms_to``.

    ``errors`` explain a negative answer; ``warnings`` carry advisory
    findings that do not affect it.
    """
    requested_level: int
    conforms: bool
    highest_level: Optional[int]
    errors: Tuple[Error, ...] = field(default_factory=tuple)
    warnings: Tuple[Error, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            'requestedLevel': self.requested_level,
            'conforms': self.conforms,
            'highestLevel': self.highest_level,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
        }


class PayloadValidator:
    """
    Structural validator for level payloads.

    Pure: every method is a function of its arguments and the registry,
    which is itself immutable. Safe to share across threads.
    """

    def __init__(
        self,
        registry: Optional[LevelSchemaRegistry] = None,
        config: Optional[ValidatorConfig] = None
    ):
        self._registry = registry or DEFAULT_REGISTRY
        self._config = config or ValidatorConfig()

    @property
    def registry(self) -> LevelSchemaRegistry:
        return self._registry

    # =========================================================================
    # CONFORMANCE
    # =========================================================================

    def conforms_to(self, value: object, level: int) -> bool:
        """True iff ``value`` satisfies every level from 0 up to ``level``."""
        if not is_known_level(level) or level not in self._registry.levels:
            return False
        if self._metadata_errors(value):
            return False
        strict = self._reference_errors_by_level(value) if self._config.strict_references else {}
        for current in self._registry.levels:
            if current > level:
                break
            if self._level_errors(value, current) or strict.get(current):
                return False
        return True

    def highest_level(self, value: object) -> Optional[int]:
        """
        Highest level ``value`` conforms to, or None.

        Advisory: reflects field presence and shape only, not semantic
        validity of the field contents.
        """
        if self._metadata_errors(value):
            return None
        strict = self._reference_errors_by_level(value) if self._config.strict_references else {}
        satisfied: Optional[int] = None
        for current in self._registry.levels:
            if self._level_errors(value, current) or strict.get(current):
                break
            satisfied = current
        return satisfied

    def is_level(self, level: int) -> Callable[[object], bool]:
        """Predicate bound to one level, for filtering collections."""
        def predicate(value: object) -> bool:
            return self.conforms_to(value, level)
        return predicate

    def declared_level(self, value: object) -> Optional[int]:
        """The level the metadata block claims, or None if metadata is malformed."""
        if self._metadata_errors(value):
            return None
        return value[METADATA_KEY]['level']

    def validate(self, value: object, level: int) -> ValidationReport:
        """Conformance answer for ``level`` with the reasons behind it."""
        warnings = self.check_metadata(value) + self.check_budget(value)
        if not self._config.strict_references:
            warnings += self.check_references(value)

        if not is_known_level(level) or level not in self._registry.levels:
            return ValidationReport(
                requested_level=level,
                conforms=False,
                highest_level=self.highest_level(value),
                errors=(Error(ErrorCode.UNKNOWN_LEVEL, f"no such level: {level!r}", level=level),),
                warnings=warnings,
            )

        errors = self._metadata_errors(value)
        if not errors:
            strict = self._reference_errors_by_level(value) if self._config.strict_references else {}
            for current in self._registry.levels:
                if current > level:
                    break
                errors = self._level_errors(value, current) + strict.get(current, ())
                if errors:
                    break

        return ValidationReport(
            requested_level=level,
            conforms=not errors,
            highest_level=self.highest_level(value),
            errors=errors,
            warnings=warnings,
        )

    # =========================================================================
    # INTERNAL CHECKS
    # =========================================================================

    def _metadata_errors(self, value: object) -> Tuple[Error, ...]:
        if not isinstance(value, MappingABC):
            return (Error(ErrorCode.MALFORMED_PAYLOAD, "payload is not a structured record"),)
        slim = value.get(METADATA_KEY)
        if not isinstance(slim, MappingABC):
            return (Error(ErrorCode.MISSING_METADATA, f"payload has no {METADATA_KEY} block",
                          field_name=METADATA_KEY),)
        errors = []
        for name, kind in _BASE_METADATA:
            if not kind.matches(slim.get(name)):
                errors.append(Error(
                    ErrorCode.INVALID_METADATA_FIELD,
                    f"metadata field {name!r} must be a {kind.value}",
                    field_name=name,
                ))
        return tuple(errors)

    def _level_errors(self, value: MappingABC, level: int) -> Tuple[Error, ...]:
        errors = []
        for spec in self._registry.new_required(level):
            if spec.name not in value:
                errors.append(Error(
                    ErrorCode.MISSING_FIELD,
                    f"level {level} requires field {spec.name!r}",
                    level=level,
                    field_name=spec.name,
                ))
            elif not spec.kind.matches(value[spec.name]):
                errors.append(Error(
                    ErrorCode.WRONG_FIELD_KIND,
                    f"field {spec.name!r} must be a {spec.kind.value}",
                    level=level,
                    field_name=spec.name,
                ))
        return tuple(errors)

    def _reference_errors_by_level(self, value: object) -> Dict[int, Tuple[Error, ...]]:
        grouped: Dict[int, List[Error]] = {}
        for error in self.check_references(value):
            grouped.setdefault(error.level, []).append(error)
        return {level: tuple(errors) for level, errors in grouped.items()}

    # =========================================================================
    # ADVISORY CHECKS
    # =========================================================================

    def check_metadata(self, value: object) -> Tuple[Error, ...]:
        """Consistency of the metadata block beyond the base type check."""
        if self._metadata_errors(value):
            return ()
        slim = value[METADATA_KEY]
        errors = []

        level = slim['level']
        if not is_known_level(level):
            errors.append(Error(ErrorCode.UNKNOWN_LEVEL, f"declared level {level!r} is not in 0-9",
                                field_name='level'))

        if slim['version'] != self._registry.version:
            errors.append(Error(
                ErrorCode.INVALID_METADATA_FIELD,
                f"protocol version {slim['version']!r} differs from {self._registry.version!r}",
                field_name='version',
            ))

        available = slim.get('availableLevels')
        if not FieldKind.SEQUENCE.matches(available):
            errors.append(Error(ErrorCode.INVALID_METADATA_FIELD,
                                "availableLevels must be a sequence of levels",
                                field_name='availableLevels'))
        else:
            levels = list(available)
            if not all(is_known_level(l) for l in levels):
                errors.append(Error(ErrorCode.INVALID_METADATA_FIELD,
                                    "availableLevels contains values outside 0-9",
                                    field_name='availableLevels'))
            elif levels != sorted(set(levels)):
                errors.append(Error(ErrorCode.INVALID_METADATA_FIELD,
                                    "availableLevels must be ascending without duplicates",
                                    field_name='availableLevels'))
            if level not in levels:
                errors.append(Error(ErrorCode.LEVEL_NOT_AVAILABLE,
                                    f"level {level!r} is not listed in availableLevels",
                                    level=level if is_known_level(level) else None,
                                    field_name='availableLevels'))

        token_count = slim.get('tokenCount')
        if not FieldKind.NUMBER.matches(token_count) or token_count < 0:
            errors.append(Error(ErrorCode.INVALID_METADATA_FIELD,
                                "tokenCount must be a non-negative number",
                                field_name='tokenCount'))

        for name in ('contentType', 'generatedAt'):
            if not FieldKind.STRING.matches(slim.get(name)):
                errors.append(Error(ErrorCode.INVALID_METADATA_FIELD,
                                    f"metadata field {name!r} must be a string",
                                    field_name=name))

        ttl = slim.get('ttlSeconds')
        if ttl is not None and (not FieldKind.NUMBER.matches(ttl) or ttl < 0):
            errors.append(Error(ErrorCode.INVALID_METADATA_FIELD,
                                "ttlSeconds must be a non-negative number",
                                field_name='ttlSeconds'))
        return tuple(errors)

    def check_budget(self, value: object) -> Tuple[Error, ...]:
        """Measured tokenCount against the declared level's budget."""
        if self._metadata_errors(value):
            return ()
        slim = value[METADATA_KEY]
        level, token_count = slim['level'], slim.get('tokenCount')
        if not is_known_level(level) or not FieldKind.NUMBER.matches(token_count):
            return ()
        status = self._registry.budget_status(level, token_count)
        budget = self._registry.budget_for(level)
        if status is BudgetStatus.OVER:
            return (Error(ErrorCode.BUDGET_EXCEEDED,
                          f"{token_count} tokens exceeds level {level} maximum {budget.max}",
                          level=level, field_name='tokenCount'),)
        if status is BudgetStatus.UNDER:
            return (Error(ErrorCode.BUDGET_UNDERRUN,
                          f"{token_count} tokens is below level {level} minimum {budget.min}",
                          level=level, field_name='tokenCount'),)
        return ()

    def check_references(self, value: object) -> Tuple[Error, ...]:
        """
        Referential integrity of unit-keyed fields.

        Only fields whose target collection is present are checked; a
        payload below L3 has no units to resolve against.
        """
        if not isinstance(value, MappingABC):
            return ()
        errors: List[Error] = []

        unit_ids, parents = self._collect_ids(value, 'units', errors)
        schema_ids, _ = self._collect_ids(value, 'schemas', errors)
        media_ids, _ = self._collect_ids(value, 'media', errors)

        if unit_ids is not None:
            errors.extend(self._parent_errors(unit_ids, parents))
            for name in ('summaries', 'contents'):
                errors.extend(self._key_errors(value, name, unit_ids))
            errors.extend(self._member_ref_errors(value, 'keyPoints', 'unitId', unit_ids))
            errors.extend(self._member_ref_errors(value, 'media', 'unitId', unit_ids))
            if schema_ids is not None:
                errors.extend(self._key_errors(value, 'data', unit_ids | schema_ids))

        if media_ids is not None:
            errors.extend(self._key_errors(value, 'mediaDescriptions', media_ids))

        return tuple(errors)

    def _collect_ids(
        self,
        value: MappingABC,
        name: str,
        errors: List[Error]
    ) -> Tuple[Optional[Set[str]], Dict[str, str]]:
        items = value.get(name)
        if not FieldKind.SEQUENCE.matches(items):
            return None, {}
        level = self._registry.level_of(name)
        ids: Set[str] = set()
        parents: Dict[str, str] = {}
        for item in items:
            if not isinstance(item, MappingABC) or not isinstance(item.get('id'), str):
                continue
            item_id = item['id']
            if item_id in ids:
                errors.append(Error(ErrorCode.DUPLICATE_ID, f"duplicate {name} id {item_id!r}",
                                    level=level, field_name=name))
            ids.add(item_id)
            parent = item.get('parentId')
            if isinstance(parent, str):
                parents[item_id] = parent
        return ids, parents

    def _parent_errors(self, unit_ids: Set[str], parents: Dict[str, str]) -> List[Error]:
        level = self._registry.level_of('units')
        errors = []
        for unit_id, parent in parents.items():
            if parent not in unit_ids:
                errors.append(Error(ErrorCode.DANGLING_REFERENCE,
                                    f"unit {unit_id!r} has unknown parent {parent!r}",
                                    level=level, field_name='units'))

        # Walk each parent chain once; a node met again on the current
        # path closes a cycle, a node finished earlier ends the walk.
        done: Set[str] = set()
        for start in parents:
            if start in done:
                continue
            path: Dict[str, int] = {}
            node: Optional[str] = start
            while node is not None and node not in done and node not in path:
                path[node] = len(path)
                node = parents.get(node)
            if node is not None and node in path:
                cycle = list(path)[path[node]:]
                errors.append(Error(ErrorCode.REFERENCE_CYCLE,
                                    f"unit parent references form a cycle: {sorted(cycle)}",
                                    level=level, field_name='units'))
            done.update(path)
        return errors

    def _key_errors(self, value: MappingABC, name: str, known: Set[str]) -> List[Error]:
        mapping = value.get(name)
        if not isinstance(mapping, MappingABC):
            return []
        level = self._registry.level_of(name)
        return [
            Error(ErrorCode.DANGLING_REFERENCE, f"{name} key {key!r} names no declared item",
                  level=level, field_name=name)
            for key in mapping
            if key not in known
        ]

    def _member_ref_errors(
        self,
        value: MappingABC,
        name: str,
        attribute: str,
        known: Set[str]
    ) -> List[Error]:
        items = value.get(name)
        if not FieldKind.SEQUENCE.matches(items):
            return []
        level = self._registry.level_of(name)
        errors = []
        for item in items:
            if not isinstance(item, MappingABC):
                continue
            ref = item.get(attribute)
            if isinstance(ref, str) and ref not in known:
                errors.append(Error(ErrorCode.DANGLING_REFERENCE,
                                    f"{name} entry references unknown unit {ref!r}",
                                    level=level, field_name=name))
        return errors


DEFAULT_VALIDATOR = PayloadValidator()


def conforms_to(value: object, level: int) -> bool:
    return DEFAULT_VALIDATOR.conforms_to(value, level)


def highest_level(value: object) -> Optional[int]:
    return DEFAULT_VALIDATOR.highest_level(value)


__all__ = [
    "DEFAULT_VALIDATOR", "PayloadValidator", "ValidationReport", "ValidatorConfig",
    "conforms_to", "highest_level",
]
