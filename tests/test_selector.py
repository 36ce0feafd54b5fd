"""Tests for budgeted subset selection."""

from __future__ import annotations

import pytest

from analysis.selector import (
    SubsetSelector,
    balance_score,
    determine_bounding_constraint,
    evaluate_selection_quality,
    recommend_strategy,
)
from constants import BoundingConstraint, SelectionStrategy
from tests.conftest import make_scored


STRATEGIES = [s.value for s in SelectionStrategy]


@pytest.fixture
def selector() -> SubsetSelector:
    return SubsetSelector()


@pytest.fixture
def backlog():
    return [
        make_scored(f"op-{i:02d}", priority=(i * 37) % 100, token_count=20 + (i * 53) % 400)
        for i in range(1, 31)
    ]


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_budgets_are_respected(selector: SubsetSelector, backlog, strategy: str):
    result = selector.select(backlog, token_limit=1500, max_opinions=8, strategy=strategy)

    assert sum(s.token_count for s in result.selected) <= 1500
    assert len(result.selected) <= 8


@pytest.mark.parametrize("strategy", STRATEGIES)
def test_selected_and_deferred_partition_the_input(selector: SubsetSelector, backlog, strategy: str):
    result = selector.select(backlog, token_limit=1500, max_opinions=8, strategy=strategy)

    selected = {s.opinion_id for s in result.selected}
    deferred = {s.opinion_id for s in result.deferred}
    assert selected.isdisjoint(deferred)
    assert selected | deferred == {s.opinion_id for s in backlog}
    assert len(result.selected) + len(result.deferred) == len(backlog)


def test_greedy_priority_takes_highest_first(selector: SubsetSelector):
    scored = [make_scored("low", 10), make_scored("high", 90), make_scored("mid", 50)]
    result = selector.select(scored, token_limit=4000, max_opinions=2, strategy="greedy_priority")

    assert [s.opinion_id for s in result.selected] == ["high", "mid"]
    assert [s.opinion_id for s in result.deferred] == ["low"]
    assert result.bounding_constraint == BoundingConstraint.OPINION_LIMIT.value


def test_greedy_skips_items_that_do_not_fit(selector: SubsetSelector):
    scored = [
        make_scored("big", 90, token_count=900),
        make_scored("small", 50, token_count=100),
    ]
    result = selector.select(scored, token_limit=500, max_opinions=5, strategy="greedy_priority")

    assert [s.opinion_id for s in result.selected] == ["small"]


def test_token_efficiency_requires_minimum_efficiency():
    scored = [
        make_scored("dense", 60, token_count=2),     # 30 per token
        make_scored("sparse", 90, token_count=100),  # 0.9 per token
    ]
    result = SubsetSelector(min_efficiency=20).select(
        scored, token_limit=4000, max_opinions=5, strategy="token_efficiency",
    )

    assert [s.opinion_id for s in result.selected] == ["dense"]
    assert [s.opinion_id for s in result.deferred] == ["sparse"]


def test_balanced_prefers_priority_with_efficiency_tiebreak(selector: SubsetSelector):
    a = make_scored("a", 80, token_count=200)
    b = make_scored("b", 80, token_count=20)
    assert balance_score(b) > balance_score(a)

    result = selector.select([a, b], token_limit=4000, max_opinions=1, strategy="balanced")
    assert [s.opinion_id for s in result.selected] == ["b"]


def test_deferred_keeps_input_order(selector: SubsetSelector):
    scored = [make_scored(f"op-{i}", 50 - i) for i in range(6)]
    result = selector.select(scored, token_limit=4000, max_opinions=2, strategy="greedy_priority")

    assert [s.opinion_id for s in result.deferred] == ["op-2", "op-3", "op-4", "op-5"]


def test_empty_input(selector: SubsetSelector):
    result = selector.select([], token_limit=4000, max_opinions=15)

    assert result.selected == []
    assert result.deferred == []
    assert result.stats.selection_rate == 0.0
    assert result.bounding_constraint == BoundingConstraint.TOKEN_LIMIT.value


def test_unknown_strategy_is_rejected(selector: SubsetSelector):
    with pytest.raises(ValueError):
        selector.select([make_scored("a", 50)], strategy="random")


@pytest.mark.parametrize(
    ("tokens", "count", "expected"),
    [
        (3800, 15, BoundingConstraint.BOTH),
        (3800, 3, BoundingConstraint.TOKEN_LIMIT),
        (600, 15, BoundingConstraint.OPINION_LIMIT),
        (600, 3, BoundingConstraint.TOKEN_LIMIT),
    ],
)
def test_bounding_constraint(tokens: int, count: int, expected: BoundingConstraint):
    assert determine_bounding_constraint(tokens, 4000, count, 15) == expected


def test_selection_stats(selector: SubsetSelector):
    scored = [make_scored("a", 80, token_count=40), make_scored("b", 40, token_count=40)]
    stats = selector.select(scored, token_limit=100, max_opinions=15).stats

    assert stats.selected_count == 2
    assert stats.selection_rate == 100.0
    assert stats.total_tokens == 80
    assert stats.token_usage_rate == 80.0
    assert stats.average_priority == 60.0
    assert stats.efficiency == 1.5


def test_quality_rubric(selector: SubsetSelector):
    scored = [make_scored("a", 90, token_count=4), make_scored("b", 80, token_count=4)]
    result = selector.select(scored, token_limit=9, max_opinions=15)
    evaluation = evaluate_selection_quality(result)

    # rate 100 -> 25, usage 88.89 -> 25, priority 85 -> 25, efficiency 21.25 -> 25
    assert evaluation.score == 100
    assert evaluation.quality == "excellent"
    assert evaluation.recommendations == []


def test_quality_rubric_poor_selection(selector: SubsetSelector):
    scored = [make_scored(f"op-{i}", 20, token_count=100) for i in range(10)]
    evaluation = evaluate_selection_quality(selector.select(scored, token_limit=4000, max_opinions=1))

    assert evaluation.quality == "poor"
    assert len(evaluation.recommendations) == 4


def test_recommend_strategy():
    assert recommend_strategy([]).strategy == "balanced"

    spread = [make_scored("a", 100, token_count=50), make_scored("b", 60, token_count=50),
              make_scored("c", 98, token_count=50)]
    recommendation = recommend_strategy(spread)
    assert recommendation.strategy == "greedy_priority"
    assert recommendation.confidence == 0.85

    uneven = [make_scored("a", 30, token_count=10), make_scored("b", 30, token_count=400)]
    assert recommend_strategy(uneven).strategy == "token_efficiency"

    even = [make_scored("a", 30, token_count=40), make_scored("b", 35, token_count=41)]
    assert recommend_strategy(even).strategy == "balanced"
