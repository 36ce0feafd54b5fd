"""
Classifier Module - Single-call opinion classification

Components:
- ClassificationOrchestrator: builds the request, calls the model once, validates
- ResponseParser: per-item validation of the structured response
- CallBudget / RetryPolicy: one call per run, linear transport retries
- build_fallback_outcome: deterministic outcome for unusable responses
"""

from .models import (
    AssignToExisting,
    CreateNew,
    AlternativeOption,
    ClassificationDecision,
    NewClusterProposal,
    Insight,
    RejectedItem,
    OutcomeMetadata,
    ClassificationOutcome,
)
from .budget import CallBudget
from .retry import RetryPolicy
from .output_parser import ResponseParser, ParsedPayload, clamp_confidence
from .classifier import (
    ClassificationOrchestrator,
    ClassificationError,
    build_fallback_outcome,
    FALLBACK_CONFIDENCE,
    TASK_TYPE,
)


__all__ = [
    "ClassificationOrchestrator",
    "ClassificationError",
    "build_fallback_outcome",
    "FALLBACK_CONFIDENCE",
    "TASK_TYPE",
    "CallBudget",
    "RetryPolicy",
    "ResponseParser",
    "ParsedPayload",
    "clamp_confidence",
    "AssignToExisting",
    "CreateNew",
    "AlternativeOption",
    "ClassificationDecision",
    "NewClusterProposal",
    "Insight",
    "RejectedItem",
    "OutcomeMetadata",
    "ClassificationOutcome",
]
