"""
Data models for the Continuation module.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class StateUpdate:
    """Result of one opinion's analysis state upsert."""
    opinion_id: str
    analyzed: bool  # False for deferral-only touches
    success: bool
    analysis_version: Optional[int] = None
    last_analyzed_at: Optional[datetime] = None
    topic_id: Optional[str] = None
    confidence: Optional[float] = None
    manual_review: bool = False
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "opinion_id": self.opinion_id,
            "analyzed": self.analyzed,
            "success": self.success,
            "analysis_version": self.analysis_version,
            "last_analyzed_at": self.last_analyzed_at.isoformat() if self.last_analyzed_at else None,
            "topic_id": self.topic_id,
            "confidence": self.confidence,
            "manual_review": self.manual_review,
            "error": self.error,
        }


@dataclass
class StateUpdateResults:
    """Per-opinion write results. Failures are counted, never raised."""
    updates: list[StateUpdate] = field(default_factory=list)

    @property
    def total_updates(self) -> int:
        return len(self.updates)

    @property
    def success_count(self) -> int:
        return sum(1 for u in self.updates if u.success)

    @property
    def error_count(self) -> int:
        return sum(1 for u in self.updates if not u.success)

    @property
    def manual_review_count(self) -> int:
        return sum(1 for u in self.updates if u.success and u.manual_review)

    @property
    def errors(self) -> list[dict]:
        return [{"opinion_id": u.opinion_id, "error": u.error} for u in self.updates if not u.success]

    def to_dict(self) -> dict:
        return {
            "total_updates": self.total_updates,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "manual_review_count": self.manual_review_count,
            "errors": self.errors,
            "updates": [u.to_dict() for u in self.updates],
        }


@dataclass
class PriorityDistribution:
    high: int = 0
    medium: int = 0
    low: int = 0

    def to_dict(self) -> dict:
        return {"high": self.high, "medium": self.medium, "low": self.low}


@dataclass
class AnalysisStatus:
    """Backlog progress of a project."""
    project_id: str
    total_opinions: int
    analyzed_opinions: int
    unanalyzed_opinions: int
    completion_rate: float
    priority_distribution: PriorityDistribution
    next_analysis_recommended: bool
    estimated_next_analysis_size: int
    last_analysis_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "total_opinions": self.total_opinions,
            "analyzed_opinions": self.analyzed_opinions,
            "unanalyzed_opinions": self.unanalyzed_opinions,
            "completion_rate": self.completion_rate,
            "priority_distribution": self.priority_distribution.to_dict(),
            "next_analysis_recommended": self.next_analysis_recommended,
            "estimated_next_analysis_size": self.estimated_next_analysis_size,
            "last_analysis_at": self.last_analysis_at.isoformat() if self.last_analysis_at else None,
        }


@dataclass
class SuggestedParameters:
    max_opinions: int
    strategy: str

    def to_dict(self) -> dict:
        return {"max_opinions": self.max_opinions, "strategy": self.strategy}


@dataclass
class RunRecommendation:
    """When and how to run next. Recomputed every run."""
    recommended: bool
    urgency: str
    reason: str
    estimated_processing_seconds: int
    suggested_parameters: Optional[SuggestedParameters]
    unprocessed_high_priority: int
    unprocessed_total: int
    next_run_at: datetime
    priority_distribution: PriorityDistribution = field(default_factory=PriorityDistribution)

    def to_dict(self) -> dict:
        return {
            "recommended": self.recommended,
            "urgency": self.urgency,
            "reason": self.reason,
            "estimated_processing_seconds": self.estimated_processing_seconds,
            "suggested_parameters": self.suggested_parameters.to_dict() if self.suggested_parameters else None,
            "unprocessed_high_priority": self.unprocessed_high_priority,
            "unprocessed_total": self.unprocessed_total,
            "next_run_at": self.next_run_at.isoformat(),
            "priority_distribution": self.priority_distribution.to_dict(),
        }


@dataclass
class TopicUpdateSummary:
    """What the topic transaction changed."""
    created_topics: list[dict] = field(default_factory=list)   # {id, name, cluster_id, count}
    updated_topics: dict[str, int] = field(default_factory=dict)  # topic_id -> opinions added
    assignments: dict[str, str] = field(default_factory=dict)     # opinion_id -> topic_id

    @property
    def created_count(self) -> int:
        return len(self.created_topics)

    @property
    def updated_count(self) -> int:
        return len(self.updated_topics)

    def to_dict(self) -> dict:
        return {
            "created_count": self.created_count,
            "updated_count": self.updated_count,
            "created_topics": self.created_topics,
            "updated_topics": [
                {"topic_id": topic_id, "added": added}
                for topic_id, added in self.updated_topics.items()
            ],
            "assigned_opinions": len(self.assignments),
        }


@dataclass
class ContinuationResult:
    state_updates: StateUpdateResults
    status: AnalysisStatus
    recommendation: RunRecommendation

    def to_dict(self) -> dict:
        return {
            "state_updates": self.state_updates.to_dict(),
            "status": self.status.to_dict(),
            "recommendation": self.recommendation.to_dict(),
        }
