"""
Data models for the Scorer module.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class TopicSnapshot:
    """Read-only view of an existing topic, cached for one run."""
    id: str
    name: str
    summary: str = ""
    count: int = 0
    keywords: list[str] = field(default_factory=list)

    @classmethod
    def from_model(cls, topic) -> "TopicSnapshot":
        return cls(
            id=topic.id,
            name=topic.name,
            summary=topic.summary or "",
            count=topic.count or 0,
            keywords=list(topic.keywords or []),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "summary": self.summary,
            "count": self.count,
            "keywords": self.keywords,
        }


@dataclass
class ScoringContext:
    """Everything scoring depends on besides the opinion itself."""
    now: datetime
    existing_topics: list[TopicSnapshot] = field(default_factory=list)
    project_keywords: list[str] = field(default_factory=list)


@dataclass
class ScoreBreakdown:
    """The four capped sub-scores."""
    length: int = 0
    recency: int = 0
    uniqueness: int = 0
    emotion: int = 0

    @property
    def total(self) -> int:
        return self.length + self.recency + self.uniqueness + self.emotion

    def to_dict(self) -> dict:
        return {
            "length": self.length,
            "recency": self.recency,
            "uniqueness": self.uniqueness,
            "emotion": self.emotion,
        }


@dataclass
class ScoredOpinion:
    """
    Transient scored view of an opinion.

    Created fresh every run, never persisted.
    """
    opinion_id: str
    content: str
    submitted_at: datetime
    priority: int
    token_count: int
    reasons: list[str] = field(default_factory=list)
    breakdown: Optional[ScoreBreakdown] = None

    @property
    def character_count(self) -> int:
        return len(self.content)

    @property
    def efficiency(self) -> float:
        """Priority per token."""
        return self.priority / max(self.token_count, 1)

    def to_dict(self) -> dict:
        return {
            "opinion_id": self.opinion_id,
            "content": self.content,
            "submitted_at": self.submitted_at.isoformat(),
            "priority": self.priority,
            "token_count": self.token_count,
            "character_count": self.character_count,
            "reasons": self.reasons,
            "breakdown": self.breakdown.to_dict() if self.breakdown else None,
        }


@dataclass
class PriorityStats:
    """Summary of a batch of scored opinions."""
    total_opinions: int
    average_priority: int
    high_priority_count: int
    medium_priority_count: int
    low_priority_count: int
    total_tokens: int
    average_tokens_per_opinion: int

    def to_dict(self) -> dict:
        return {
            "total_opinions": self.total_opinions,
            "average_priority": self.average_priority,
            "high_priority_count": self.high_priority_count,
            "medium_priority_count": self.medium_priority_count,
            "low_priority_count": self.low_priority_count,
            "total_tokens": self.total_tokens,
            "average_tokens_per_opinion": self.average_tokens_per_opinion,
        }
