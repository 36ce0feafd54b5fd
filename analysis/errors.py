"""
Analysis Errors

Run-level errors carry a machine-readable code and a human-readable message.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error kinds of an analysis run."""
    NOT_FOUND = "NOT_FOUND"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    CONTRACT_VIOLATION = "CONTRACT_VIOLATION"
    PARTIAL_STATE_WRITE_FAILURE = "PARTIAL_STATE_WRITE_FAILURE"
    TRANSACTION_FAILURE = "TRANSACTION_FAILURE"
    CALL_BUDGET_EXHAUSTED = "CALL_BUDGET_EXHAUSTED"
    INVALID_OPTIONS = "INVALID_OPTIONS"


class AnalysisError(Exception):
    """Fatal error of an analysis run."""

    def __init__(self, code: ErrorCode, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.message}"
