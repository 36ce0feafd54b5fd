"""
External call budget.

One analysis run may make exactly one classification call. The budget is
created per run and consumed by the orchestrator right before calling.
"""
from analysis.errors import AnalysisError, ErrorCode


class CallBudget:
    """Counts external calls against a hard limit (1 per run)."""

    def __init__(self, limit: int = 1):
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return self.limit - self.used

    def consume(self) -> None:
        """
        Take one call from the budget.

        Raises:
            AnalysisError: CALL_BUDGET_EXHAUSTED if no calls remain
        """
        if self.used >= self.limit:
            raise AnalysisError(
                ErrorCode.CALL_BUDGET_EXHAUSTED,
                f"External call budget exhausted ({self.used}/{self.limit} used)",
                {"limit": self.limit, "used": self.used},
            )
        self.used += 1

    def __repr__(self) -> str:
        return f"CallBudget(used={self.used}, limit={self.limit})"
