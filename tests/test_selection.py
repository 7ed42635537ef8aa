from __future__ import annotations

import pytest

from slim_pyramid.contracts.levels import LevelRequest, Preference
from slim_pyramid.schema import DEFAULT_REGISTRY
from slim_pyramid.selection import (
    DEFAULT_SELECTOR,
    LevelSelector,
    SelectionBasis,
    normalize_levels,
    select_level,
)


# =============================================================================
# EXPLICIT LEVEL
# =============================================================================

def test_explicit_level_available() -> None:
    assert select_level({1, 3, 4, 5, 7}, LevelRequest(level=4)) == 4


def test_explicit_level_unavailable_falls_back_to_maximum() -> None:
    selection = DEFAULT_SELECTOR.explain({1, 3, 5}, LevelRequest(level=4))

    assert selection.level == 5
    assert selection.basis is SelectionBasis.EXPLICIT_FALLBACK
    assert selection.is_fallback


def test_explicit_level_beats_every_other_field() -> None:
    request = LevelRequest(level=1, max_level=0, token_budget=10_000, prefer=Preference.COMPREHENSIVE)

    assert select_level([0, 1, 9], request) == 1


# =============================================================================
# CEILING
# =============================================================================

def test_ceiling_filters_candidates() -> None:
    request = LevelRequest(max_level=4, prefer=Preference.COMPREHENSIVE)

    assert select_level([1, 3, 4, 5, 7], request) == 4


def test_empty_ceiling_reverts_to_full_set() -> None:
    selection = DEFAULT_SELECTOR.explain({3, 4, 5}, LevelRequest(max_level=1))

    assert selection.level == 3
    assert selection.ceiling_ignored
    assert selection.candidates == (3, 4, 5)
    assert selection.is_fallback


# =============================================================================
# TOKEN BUDGET
# =============================================================================

def test_budget_picks_richest_fitting_level() -> None:
    assert select_level({1, 3, 4, 5, 7}, LevelRequest(token_budget=500)) == 4


def test_budget_compares_against_target_inclusive() -> None:
    assert select_level({1, 3, 4, 5}, LevelRequest(token_budget=800)) == 5
    assert select_level({1, 3, 4, 5}, LevelRequest(token_budget=799)) == 4


def test_budget_never_picks_the_complete_level() -> None:
    assert select_level({6, 7}, LevelRequest(token_budget=10 ** 9)) == 6


def test_budget_too_small_returns_smallest_candidate() -> None:
    selection = DEFAULT_SELECTOR.explain({3, 5, 6}, LevelRequest(token_budget=5))

    assert selection.level == 3
    assert selection.basis is SelectionBasis.TOKEN_BUDGET_FALLBACK


def test_budget_respects_ceiling() -> None:
    assert select_level([1, 3, 4, 5, 7], LevelRequest(max_level=3, token_budget=10_000)) == 3


def test_budget_order_is_by_level_not_by_target() -> None:
    # L8 target (200) is smaller than L6 target (1500): scanning descending
    # by level number, L8 fits first.
    assert select_level([6, 8], LevelRequest(token_budget=300)) == 8


def test_budget_uses_injected_registry() -> None:
    selector = LevelSelector(DEFAULT_REGISTRY.with_overrides(budgets={5: (100, 10)}))

    assert selector.select({3, 4, 5}, LevelRequest(token_budget=150)) == 5


# =============================================================================
# PREFERENCE
# =============================================================================

def test_minimal_and_comprehensive() -> None:
    levels = {2, 4, 6, 8}

    assert select_level(levels, LevelRequest(prefer=Preference.MINIMAL)) == 2
    assert select_level(levels, LevelRequest(prefer="comprehensive")) == 8


def test_balanced_prefers_levels_three_and_four() -> None:
    assert select_level({1, 2, 3, 4, 5, 7}) == 3
    assert select_level({4, 9}, LevelRequest(prefer=Preference.BALANCED)) == 4


def test_balanced_midpoint_when_no_middle_level() -> None:
    selection = DEFAULT_SELECTOR.explain({1, 2, 7})

    assert selection.level == 2
    assert selection.basis is SelectionBasis.BALANCED_MIDPOINT


@pytest.mark.parametrize("levels,expected", [
    ({0}, 0),
    ({0, 9}, 9),
    ({0, 1, 2, 5}, 2),
    ({5, 6, 7, 8, 9}, 7),
])
def test_balanced_midpoint_index(levels, expected: int) -> None:
    assert select_level(levels) == expected


# =============================================================================
# INPUT HANDLING
# =============================================================================

def test_empty_available_set_is_rejected() -> None:
    with pytest.raises(ValueError):
        select_level([])


def test_only_unknown_levels_is_rejected() -> None:
    with pytest.raises(ValueError):
        select_level([11, -2])


def test_unknown_levels_are_ignored() -> None:
    assert select_level([12, 2], LevelRequest(prefer=Preference.COMPREHENSIVE)) == 2


def test_normalize_sorts_and_deduplicates() -> None:
    assert normalize_levels([5, 1, 5, 3, True, 99]) == (1, 3, 5)


def test_input_order_is_irrelevant() -> None:
    request = LevelRequest(token_budget=450)

    assert select_level([7, 5, 3, 1], request) == select_level([1, 3, 5, 7], request)


def test_request_from_wire_names() -> None:
    request = LevelRequest.from_mapping({"maxLevel": 5, "tokenBudget": 300, "prefer": "minimal"})

    assert request.max_level == 5
    assert request.token_budget == 300
    assert request.prefer is Preference.MINIMAL
    assert request.to_dict() == {"maxLevel": 5, "tokenBudget": 300, "prefer": "minimal"}


@pytest.mark.parametrize("kwargs", [{"level": "3"}, {"max_level": 2.5}, {"token_budget": True}])
def test_request_rejects_non_integers(kwargs) -> None:
    with pytest.raises(ValueError):
        LevelRequest(**kwargs)


def test_request_rejects_unknown_preference() -> None:
    with pytest.raises(ValueError):
        LevelRequest(prefer="everything")
