"""
Data models for the Selector module.
"""
from dataclasses import dataclass, field

from analysis.scorer.models import ScoredOpinion


@dataclass
class SelectionStats:
    """Statistics of one selection. Rates are percentages rounded to 2 places."""
    total_opinions: int
    selected_count: int
    unselected_count: int
    selection_rate: float
    total_tokens: int
    token_limit: int
    token_usage_rate: float
    average_priority: float
    total_priority_score: int
    efficiency: float

    def to_dict(self) -> dict:
        return {
            "total_opinions": self.total_opinions,
            "selected_count": self.selected_count,
            "unselected_count": self.unselected_count,
            "selection_rate": self.selection_rate,
            "total_tokens": self.total_tokens,
            "token_limit": self.token_limit,
            "token_usage_rate": self.token_usage_rate,
            "average_priority": self.average_priority,
            "total_priority_score": self.total_priority_score,
            "efficiency": self.efficiency,
        }


@dataclass
class OptimizationInfo:
    algorithm_used: str
    bounding_constraint: str
    optimization_ms: float = 0.0
    alternatives_considered: int = 0

    def to_dict(self) -> dict:
        return {
            "algorithm_used": self.algorithm_used,
            "bounding_constraint": self.bounding_constraint,
            "optimization_ms": self.optimization_ms,
            "alternatives_considered": self.alternatives_considered,
        }


@dataclass
class SelectionResult:
    """
    Partition of the scored backlog.

    selected and deferred are disjoint and together hold every input opinion.
    """
    selected: list[ScoredOpinion]
    deferred: list[ScoredOpinion]
    stats: SelectionStats
    optimization: OptimizationInfo

    @property
    def bounding_constraint(self) -> str:
        return self.optimization.bounding_constraint

    def to_dict(self) -> dict:
        return {
            "selected_ids": [s.opinion_id for s in self.selected],
            "deferred_ids": [s.opinion_id for s in self.deferred],
            "stats": self.stats.to_dict(),
            "optimization": self.optimization.to_dict(),
        }


@dataclass
class QualityEvaluation:
    quality: str
    score: int
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "quality": self.quality,
            "score": self.score,
            "recommendations": self.recommendations,
        }


@dataclass
class StrategyRecommendation:
    """Advisory only; never overrides the caller's strategy."""
    strategy: str
    reason: str
    confidence: float

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "reason": self.reason,
            "confidence": self.confidence,
        }
