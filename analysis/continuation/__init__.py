"""
Continuation Module - State bookkeeping and next-run planning

Components:
- TopicUpdater: topic creation, assignment and count writes (one transaction)
- ContinuationTracker: per-opinion state upserts, backlog status, recommendation
"""

from .models import (
    StateUpdate,
    StateUpdateResults,
    PriorityDistribution,
    AnalysisStatus,
    SuggestedParameters,
    RunRecommendation,
    TopicUpdateSummary,
    ContinuationResult,
)
from .topic_updater import TopicUpdater, derive_topic_keywords
from .tracker import (
    ContinuationTracker,
    estimate_processing_seconds,
    needs_manual_review,
    priority_distribution,
)


__all__ = [
    "ContinuationTracker",
    "TopicUpdater",
    "derive_topic_keywords",
    "estimate_processing_seconds",
    "needs_manual_review",
    "priority_distribution",
    "StateUpdate",
    "StateUpdateResults",
    "PriorityDistribution",
    "AnalysisStatus",
    "SuggestedParameters",
    "RunRecommendation",
    "TopicUpdateSummary",
    "ContinuationResult",
]
