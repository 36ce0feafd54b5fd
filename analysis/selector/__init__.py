"""
Selector Module - Budgeted subset selection

Components:
- SubsetSelector: greedy_priority / token_efficiency / balanced policies
- evaluate_selection_quality: 4 x 25 point rubric
- recommend_strategy: advisory policy suggestion
"""

from .models import (
    SelectionStats,
    OptimizationInfo,
    SelectionResult,
    QualityEvaluation,
    StrategyRecommendation,
)
from .selector import (
    SubsetSelector,
    balance_score,
    determine_bounding_constraint,
    evaluate_selection_quality,
    recommend_strategy,
)


__all__ = [
    "SubsetSelector",
    "balance_score",
    "determine_bounding_constraint",
    "evaluate_selection_quality",
    "recommend_strategy",
    "SelectionStats",
    "OptimizationInfo",
    "SelectionResult",
    "QualityEvaluation",
    "StrategyRecommendation",
]
