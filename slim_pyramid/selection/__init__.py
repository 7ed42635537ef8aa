"""
Level Selection Layer

RESPONSIBILITY: Pick exactly one level to serve from the levels actually
available for a content item, given a client LevelRequest.
ALLOWED INPUTS: Available level numbers, LevelRequest
OUTPUTS: One level number from the available set

PRECEDENCE (first applicable branch decides):
=============================================
1. Explicit level: returned if available, else the MAXIMUM available level
2. Ceiling: candidates <= max_level; an empty result reverts to all levels
3. Token budget: richest candidate whose budget target fits, else smallest
4. Preference: minimal -> smallest, comprehensive -> largest,
   balanced (default) -> smallest candidate in [3, 4], else the
   candidate at index len // 2 of the ascending list

Selection never fails for a non-empty input. An empty available set is a
caller precondition violation and raises ValueError.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from ..contracts.levels import LevelRequest, Preference, is_known_level
from ..schema import DEFAULT_REGISTRY, LevelSchemaRegistry


BALANCED_RANGE: Tuple[int, int] = (3, 4)


class SelectionBasis(Enum):
    """Which precedence branch decided a selection."""
    EXPLICIT = "explicit"
    EXPLICIT_FALLBACK = "explicit_fallback"
    TOKEN_BUDGET = "token_budget"
    TOKEN_BUDGET_FALLBACK = "token_budget_fallback"
    MINIMAL = "minimal"
    COMPREHENSIVE = "comprehensive"
    BALANCED = "balanced"
    BALANCED_MIDPOINT = "balanced_midpoint"


@dataclass(frozen=True)
class Selection:
    """
    A selected level and how it was reached.

    ``ceiling_ignored`` is set when max_level filtered out every level.
    """
    level: int
    basis: SelectionBasis
    candidates: Tuple[int, ...]
    ceiling_ignored: bool = False

    @property
    def is_fallback(self) -> bool:
        return self.ceiling_ignored or self.basis in (
            SelectionBasis.EXPLICIT_FALLBACK,
            SelectionBasis.TOKEN_BUDGET_FALLBACK,
        )


def normalize_levels(available_levels: Iterable[int]) -> Tuple[int, ...]:
    """
    Ascending, de-duplicated levels with unknown numbers dropped.

    Raises ValueError when nothing usable remains.
    """
    levels = tuple(sorted({l for l in available_levels if is_known_level(l)}))
    if not levels:
        raise ValueError("available_levels must contain at least one level in 0-9")
    return levels


class LevelSelector:
    """
    Deterministic level selection.

    Stateless apart from the (immutable) registry used for budget
    targets; a single instance may be shared freely.
    """

    def __init__(self, registry: Optional[LevelSchemaRegistry] = None):
        self._registry = registry or DEFAULT_REGISTRY

    def select(self, available_levels: Iterable[int], request: Optional[LevelRequest] = None) -> int:
        """Return one level from ``available_levels`` for ``request``."""
        return self.explain(available_levels, request).level

    def explain(
        self,
        available_levels: Iterable[int],
        request: Optional[LevelRequest] = None
    ) -> Selection:
        """Like ``select`` but reports which branch decided."""
        request = request or LevelRequest()
        ordered = normalize_levels(available_levels)

        # 1. Explicit level
        if request.level is not None:
            if request.level in ordered:
                return Selection(request.level, SelectionBasis.EXPLICIT, ordered)
            return Selection(ordered[-1], SelectionBasis.EXPLICIT_FALLBACK, ordered)

        # 2. Ceiling filter
        candidates: List[int] = list(ordered)
        ceiling_ignored = False
        if request.max_level is not None:
            candidates = [l for l in ordered if l <= request.max_level]
            if not candidates:
                candidates = list(ordered)
                ceiling_ignored = True
        pool = tuple(candidates)

        # 3. Token budget
        if request.token_budget is not None:
            for level in reversed(candidates):
                if self._registry.budget_for(level).target <= request.token_budget:
                    return Selection(level, SelectionBasis.TOKEN_BUDGET, pool, ceiling_ignored)
            return Selection(candidates[0], SelectionBasis.TOKEN_BUDGET_FALLBACK, pool, ceiling_ignored)

        # 4. Preference
        if request.prefer is Preference.MINIMAL:
            return Selection(candidates[0], SelectionBasis.MINIMAL, pool, ceiling_ignored)
        if request.prefer is Preference.COMPREHENSIVE:
            return Selection(candidates[-1], SelectionBasis.COMPREHENSIVE, pool, ceiling_ignored)

        low, high = BALANCED_RANGE
        balanced = [l for l in candidates if low <= l <= high]
        if balanced:
            return Selection(balanced[0], SelectionBasis.BALANCED, pool, ceiling_ignored)
        return Selection(
            candidates[len(candidates) // 2],
            SelectionBasis.BALANCED_MIDPOINT,
            pool,
            ceiling_ignored,
        )


DEFAULT_SELECTOR = LevelSelector()


def select_level(available_levels: Iterable[int], request: Optional[LevelRequest] = None) -> int:
    return DEFAULT_SELECTOR.select(available_levels, request)


__all__ = [
    "BALANCED_RANGE", "DEFAULT_SELECTOR", "LevelSelector", "Selection",
    "SelectionBasis", "normalize_levels", "select_level",
]
