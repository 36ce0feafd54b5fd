"""
Shared Enums

Application-wide enums used across multiple modules.
"""
from enum import Enum


class SelectionStrategy(str, Enum):
    """Policies for choosing which opinions fit the analysis budget."""
    GREEDY_PRIORITY = "greedy_priority"
    TOKEN_EFFICIENCY = "token_efficiency"
    BALANCED = "balanced"


class BoundingConstraint(str, Enum):
    """Which budget effectively limited a selection."""
    TOKEN_LIMIT = "token_limit"
    OPINION_LIMIT = "opinion_limit"
    BOTH = "both"


class PriorityLevel(str, Enum):
    """Priority bands for opinions."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ClassificationAction(str, Enum):
    """What the model decided to do with one opinion."""
    ASSIGN_TO_EXISTING = "ASSIGN_TO_EXISTING"
    CREATE_NEW_TOPIC = "CREATE_NEW_TOPIC"


class InsightType(str, Enum):
    """Cross-opinion insight kinds."""
    TREND = "trend"
    CONCERN = "concern"
    OPPORTUNITY = "opportunity"
    CONTRADICTION = "contradiction"
    CONSENSUS = "consensus"


class Urgency(str, Enum):
    """How soon the next analysis run should happen."""
    IMMEDIATE = "immediate"
    SOON = "soon"
    WHEN_CONVENIENT = "when_convenient"
    NOT_NEEDED = "not_needed"


class QualityGrade(str, Enum):
    """Grades used for selection quality and system health."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class TopicStatus(str, Enum):
    """Handling status of a topic."""
    UNHANDLED = "UNHANDLED"
    IN_PROGRESS = "IN_PROGRESS"
    RESOLVED = "RESOLVED"


class RunStatus(str, Enum):
    """Outcome of an analysis run."""
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"


# Dict versions for lookups
SELECTION_STRATEGIES = {s.value: s.value for s in SelectionStrategy}
INSIGHT_TYPES = {t.value: t.value for t in InsightType}
PRIORITY_LEVELS = {p.value: p.value for p in PriorityLevel}
