"""
Subset Selector

Chooses which scored opinions fit into the single classification call,
under a token budget and an opinion-count budget. Each policy is one greedy
pass over a differently ordered sequence; none is an exact knapsack solver.
"""
import time
from typing import Callable, Optional, Sequence

from loguru import logger

from constants import SelectionStrategy, BoundingConstraint
from analysis.scorer.models import ScoredOpinion
from . import config
from .models import (
    OptimizationInfo,
    QualityEvaluation,
    SelectionResult,
    SelectionStats,
    StrategyRecommendation,
)


def balance_score(opinion: ScoredOpinion) -> float:
    """Composite 0-100 score weighting priority and priority-per-token."""
    normalized_priority = opinion.priority / 100
    normalized_efficiency = min(opinion.efficiency / config.BALANCE_EFFICIENCY_NORMALIZER, 1)
    return (
        normalized_priority * config.BALANCE_PRIORITY_WEIGHT
        + normalized_efficiency * config.BALANCE_EFFICIENCY_WEIGHT
    ) * 100


def determine_bounding_constraint(
    total_tokens: int,
    token_limit: int,
    selected_count: int,
    max_opinions: int,
) -> BoundingConstraint:
    """Which budget limited the selection; token_limit when neither did."""
    hit_tokens = total_tokens >= token_limit * config.TOKEN_LIMIT_HIT_RATIO
    hit_count = selected_count >= max_opinions

    if hit_tokens and hit_count:
        return BoundingConstraint.BOTH
    if hit_count:
        return BoundingConstraint.OPINION_LIMIT
    return BoundingConstraint.TOKEN_LIMIT


class SubsetSelector:
    """
    Greedy dual-budget selection.

    Args:
        min_efficiency: Priority-per-token floor for the token_efficiency policy
    """

    def __init__(self, min_efficiency: float = config.EFFICIENCY_THRESHOLD):
        self.min_efficiency = min_efficiency

    def select(
        self,
        scored: Sequence[ScoredOpinion],
        token_limit: int = config.DEFAULT_TOKEN_LIMIT,
        max_opinions: int = config.DEFAULT_MAX_OPINIONS,
        strategy: SelectionStrategy | str = SelectionStrategy.BALANCED,
    ) -> SelectionResult:
        """
        Partition scored opinions into selected and deferred.

        Args:
            scored: Scored opinions (any order)
            token_limit: Maximum sum of token_count over the selection
            max_opinions: Maximum number of selected opinions
            strategy: greedy_priority, token_efficiency or balanced
        """
        strategy = SelectionStrategy(strategy)
        started = time.perf_counter()

        if strategy == SelectionStrategy.GREEDY_PRIORITY:
            ordered = sorted(scored, key=lambda s: s.priority, reverse=True)
            admit = None
        elif strategy == SelectionStrategy.TOKEN_EFFICIENCY:
            ordered = sorted(scored, key=lambda s: s.efficiency, reverse=True)
            admit = lambda s: s.efficiency >= self.min_efficiency
        else:
            ordered = sorted(scored, key=balance_score, reverse=True)
            admit = None

        selected = self._greedy_fill(ordered, token_limit, max_opinions, admit)
        selected_ids = {s.opinion_id for s in selected}
        deferred = [s for s in scored if s.opinion_id not in selected_ids]

        result = self._build_result(selected, deferred, token_limit, max_opinions, strategy)
        result.optimization.optimization_ms = round((time.perf_counter() - started) * 1000, 2)

        logger.info(
            f"Selected {result.stats.selected_count}/{result.stats.total_opinions} opinions "
            f"({strategy.value}): tokens {result.stats.total_tokens}/{token_limit}, "
            f"avg priority {result.stats.average_priority}, "
            f"bounded by {result.bounding_constraint}"
        )
        return result

    def _greedy_fill(
        self,
        ordered: Sequence[ScoredOpinion],
        token_limit: int,
        max_opinions: int,
        admit: Optional[Callable[[ScoredOpinion], bool]],
    ) -> list[ScoredOpinion]:
        selected = []
        total_tokens = 0
        for opinion in ordered:
            if len(selected) >= max_opinions:
                break
            if total_tokens + opinion.token_count > token_limit:
                continue
            if admit is not None and not admit(opinion):
                continue
            selected.append(opinion)
            total_tokens += opinion.token_count
        return selected

    def _build_result(
        self,
        selected: list[ScoredOpinion],
        deferred: list[ScoredOpinion],
        token_limit: int,
        max_opinions: int,
        strategy: SelectionStrategy,
    ) -> SelectionResult:
        total = len(selected) + len(deferred)
        total_tokens = sum(s.token_count for s in selected)
        total_priority = sum(s.priority for s in selected)

        stats = SelectionStats(
            total_opinions=total,
            selected_count=len(selected),
            unselected_count=len(deferred),
            selection_rate=round(len(selected) / total * 100, 2) if total else 0.0,
            total_tokens=total_tokens,
            token_limit=token_limit,
            token_usage_rate=round(total_tokens / token_limit * 100, 2) if token_limit > 0 else 0.0,
            average_priority=round(total_priority / len(selected), 2) if selected else 0.0,
            total_priority_score=total_priority,
            efficiency=round(total_priority / total_tokens, 2) if total_tokens else 0.0,
        )
        constraint = determine_bounding_constraint(total_tokens, token_limit, len(selected), max_opinions)
        optimization = OptimizationInfo(
            algorithm_used=strategy.value,
            bounding_constraint=constraint.value,
            alternatives_considered=total,
        )
        return SelectionResult(selected=selected, deferred=deferred, stats=stats, optimization=optimization)


def evaluate_selection_quality(result: SelectionResult) -> QualityEvaluation:
    """Score a selection on four 25-point criteria and grade it."""
    stats = result.stats
    recommendations = []

    rate_points = config.band_points(stats.selection_rate, config.SELECTION_RATE_BANDS)
    if rate_points == 15:
        recommendations.append("Selection rate is low; consider raising the token limit")
    elif rate_points == config.RUBRIC_FLOOR:
        recommendations.append("Selection rate is too low; the limits need review")

    low, high = config.TOKEN_USAGE_SWEET_SPOT
    if low < stats.token_usage_rate <= high:
        usage_points = 25
    else:
        usage_points = config.band_points(stats.token_usage_rate, config.TOKEN_USAGE_BANDS)
    if usage_points == config.RUBRIC_FLOOR:
        recommendations.append("Token usage is low; more opinions would fit")

    priority_points = config.band_points(stats.average_priority, config.AVERAGE_PRIORITY_BANDS)
    if priority_points == config.RUBRIC_FLOOR:
        recommendations.append("Selected opinions have low priority")

    efficiency_points = config.band_points(stats.efficiency, config.EFFICIENCY_BANDS)
    if efficiency_points == config.RUBRIC_FLOOR:
        recommendations.append("Priority per token is low")

    score = rate_points + usage_points + priority_points + efficiency_points
    return QualityEvaluation(
        quality=config.grade_for_score(score),
        score=score,
        recommendations=recommendations,
    )


def _variance(values: list[float]) -> float:
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


def recommend_strategy(scored: Sequence[ScoredOpinion]) -> StrategyRecommendation:
    """Suggest a selection policy from the priority and size distribution."""
    if not scored:
        return StrategyRecommendation(
            strategy=SelectionStrategy.BALANCED.value,
            reason="No opinions to inspect; balanced is the default",
            confidence=0.75,
        )

    priorities = [s.priority for s in scored]
    tokens = [s.token_count for s in scored]
    average_priority = sum(priorities) / len(priorities)
    average_tokens = sum(tokens) / len(tokens)

    if (average_priority > config.GREEDY_MIN_AVERAGE_PRIORITY
            and _variance(priorities) > config.GREEDY_MIN_PRIORITY_VARIANCE):
        return StrategyRecommendation(
            strategy=SelectionStrategy.GREEDY_PRIORITY.value,
            reason="Many high-priority opinions with widely spread priorities",
            confidence=0.85,
        )

    if _variance(tokens) > average_tokens * config.TOKEN_VARIANCE_RATIO:
        return StrategyRecommendation(
            strategy=SelectionStrategy.TOKEN_EFFICIENCY.value,
            reason="Opinion sizes vary widely",
            confidence=0.80,
        )

    return StrategyRecommendation(
        strategy=SelectionStrategy.BALANCED.value,
        reason="Evenly distributed backlog",
        confidence=0.75,
    )
