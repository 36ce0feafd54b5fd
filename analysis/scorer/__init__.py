"""
Scorer Module - Opinion priority scoring

Components:
- PriorityScorer: deterministic 0-100 priority with reasons
- generate_priority_stats: batch summary by priority band
"""

from .models import (
    TopicSnapshot,
    ScoringContext,
    ScoreBreakdown,
    ScoredOpinion,
    PriorityStats,
)
from .scorer import (
    PriorityScorer,
    generate_priority_stats,
    collect_topic_keywords,
    project_keywords_from_name,
)


__all__ = [
    "PriorityScorer",
    "generate_priority_stats",
    "collect_topic_keywords",
    "project_keywords_from_name",
    "TopicSnapshot",
    "ScoringContext",
    "ScoreBreakdown",
    "ScoredOpinion",
    "PriorityStats",
]
