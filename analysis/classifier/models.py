"""
Data models for the Classifier module.

A decision's target is a tagged union: AssignToExisting or CreateNew.
"""
from dataclasses import dataclass, field
from typing import Optional, Union

from constants import ClassificationAction


@dataclass(frozen=True)
class AssignToExisting:
    topic_id: str

    @property
    def action(self) -> ClassificationAction:
        return ClassificationAction.ASSIGN_TO_EXISTING


@dataclass(frozen=True)
class CreateNew:
    cluster_id: str

    @property
    def action(self) -> ClassificationAction:
        return ClassificationAction.CREATE_NEW_TOPIC


DecisionTarget = Union[AssignToExisting, CreateNew]


@dataclass
class AlternativeOption:
    action: str
    target_id: str
    confidence: float

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "target_id": self.target_id,
            "confidence": self.confidence,
        }


@dataclass
class ClassificationDecision:
    """What to do with one selected opinion."""
    opinion_id: str
    target: DecisionTarget
    confidence: float
    reasoning: str = ""
    alternatives: list[AlternativeOption] = field(default_factory=list)

    @property
    def action(self) -> ClassificationAction:
        return self.target.action

    def to_dict(self) -> dict:
        return {
            "opinion_id": self.opinion_id,
            "action": self.action.value,
            "target_topic_id": self.target.topic_id if isinstance(self.target, AssignToExisting) else None,
            "new_topic_cluster": self.target.cluster_id if isinstance(self.target, CreateNew) else None,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "alternatives": [a.to_dict() for a in self.alternatives],
        }


@dataclass
class NewClusterProposal:
    """Proposed new topic. Becomes a Topic when applied."""
    cluster_id: str
    name: str
    summary: str
    opinion_ids: list[str]
    priority: str = "medium"
    confidence: float = 0.5
    keywords: list[str] = field(default_factory=list)
    theme: str = ""
    synthesized: bool = False  # built locally for a decision the model left without a proposal

    def to_dict(self) -> dict:
        return {
            "cluster_id": self.cluster_id,
            "name": self.name,
            "summary": self.summary,
            "opinion_ids": self.opinion_ids,
            "priority": self.priority,
            "confidence": self.confidence,
            "keywords": self.keywords,
            "theme": self.theme,
            "synthesized": self.synthesized,
        }


@dataclass
class Insight:
    """Cross-opinion observation."""
    type: str
    title: str
    description: str
    affected_opinions: list[str] = field(default_factory=list)
    priority: str = "medium"
    confidence: float = 0.5
    suggested_actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "affected_opinions": self.affected_opinions,
            "priority": self.priority,
            "confidence": self.confidence,
            "suggested_actions": self.suggested_actions,
        }


@dataclass
class RejectedItem:
    """Payload item that failed validation."""
    kind: str  # 'classification', 'cluster', 'insight'
    index: int
    reason: str

    def to_dict(self) -> dict:
        return {"kind": self.kind, "index": self.index, "reason": self.reason}


@dataclass
class OutcomeMetadata:
    model: str = ""
    prompt_tokens_estimate: int = 0
    attempts: int = 0
    call_ms: int = 0
    parse_ms: int = 0
    validation_ms: int = 0
    used_fallback: bool = False
    fallback_reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "model": self.model,
            "prompt_tokens_estimate": self.prompt_tokens_estimate,
            "attempts": self.attempts,
            "call_ms": self.call_ms,
            "parse_ms": self.parse_ms,
            "validation_ms": self.validation_ms,
            "used_fallback": self.used_fallback,
            "fallback_reason": self.fallback_reason,
        }


@dataclass
class ClassificationOutcome:
    """
    Validated result of the single classification call.

    At most one decision per selected opinion; every CreateNew decision
    points at exactly one proposal in clusters.
    """
    decisions: list[ClassificationDecision] = field(default_factory=list)
    clusters: list[NewClusterProposal] = field(default_factory=list)
    insights: list[Insight] = field(default_factory=list)
    rejected: list[RejectedItem] = field(default_factory=list)
    metadata: OutcomeMetadata = field(default_factory=OutcomeMetadata)

    def decision_for(self, opinion_id: str) -> Optional[ClassificationDecision]:
        for decision in self.decisions:
            if decision.opinion_id == opinion_id:
                return decision
        return None

    def cluster(self, cluster_id: str) -> Optional[NewClusterProposal]:
        for proposal in self.clusters:
            if proposal.cluster_id == cluster_id:
                return proposal
        return None

    @property
    def assigned_count(self) -> int:
        return sum(1 for d in self.decisions if isinstance(d.target, AssignToExisting))

    @property
    def created_count(self) -> int:
        return sum(1 for d in self.decisions if isinstance(d.target, CreateNew))

    @property
    def average_confidence(self) -> float:
        if not self.decisions:
            return 0.0
        return round(sum(d.confidence for d in self.decisions) / len(self.decisions), 3)

    def to_dict(self) -> dict:
        return {
            "decisions": [d.to_dict() for d in self.decisions],
            "clusters": [c.to_dict() for c in self.clusters],
            "insights": [i.to_dict() for i in self.insights],
            "rejected": [r.to_dict() for r in self.rejected],
            "metadata": self.metadata.to_dict(),
        }
