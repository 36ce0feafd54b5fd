"""
Analysis Module - Priority-based single-pass opinion analysis

Pipeline:
- scorer: priority 0-100 per backlog opinion
- selector: subset under token and count budgets
- classifier: one model call, validated response, deterministic fallback
- continuation: topic writes, per-opinion state, next-run recommendation
- pipeline: PipelineCoordinator and the CLI entry point
"""

from .errors import AnalysisError, ErrorCode
from .pipeline import AnalysisOptions, PipelineCoordinator


__all__ = [
    "AnalysisError",
    "ErrorCode",
    "AnalysisOptions",
    "PipelineCoordinator",
]
