"""
Constants package for Opinion Analysis.

Contains shared enums used across the analysis pipeline.
"""

from .enums import (
    SelectionStrategy,
    BoundingConstraint,
    PriorityLevel,
    ClassificationAction,
    InsightType,
    Urgency,
    QualityGrade,
    TopicStatus,
    RunStatus,
    # Dict versions
    SELECTION_STRATEGIES,
    INSIGHT_TYPES,
    PRIORITY_LEVELS,
)

__all__ = [
    # Enums
    "SelectionStrategy",
    "BoundingConstraint",
    "PriorityLevel",
    "ClassificationAction",
    "InsightType",
    "Urgency",
    "QualityGrade",
    "TopicStatus",
    "RunStatus",
    # Dicts
    "SELECTION_STRATEGIES",
    "INSIGHT_TYPES",
    "PRIORITY_LEVELS",
]
