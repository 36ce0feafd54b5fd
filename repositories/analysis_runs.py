"""
Analysis Run Repository

Handles database operations for analysis run history.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select, desc

from database.models import AnalysisRun
from .base import BaseRepository


class AnalysisRunRepository(BaseRepository[AnalysisRun]):
    """Repository for analysis run history operations."""

    model = AnalysisRun

    async def get_latest(self, project_id: str) -> Optional[AnalysisRun]:
        """Get the most recent run of a project."""
        stmt = (
            select(AnalysisRun)
            .where(AnalysisRun.project_id == project_id)
            .order_by(desc(AnalysisRun.started_at))
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_run(
        self,
        project_id: str,
        started_at: datetime,
        status: str,
        run_id: Optional[str] = None,
        finished_at: Optional[datetime] = None,
        execution_seconds: Optional[float] = None,
        strategy: Optional[str] = None,
        token_limit: Optional[int] = None,
        max_opinions: Optional[int] = None,
        backlog_count: int = 0,
        selected_count: int = 0,
        deferred_count: int = 0,
        api_calls_used: int = 0,
        used_fallback: Optional[bool] = None,
        urgency: Optional[str] = None,
        summary: Optional[str] = None,
        report: Optional[dict] = None,
        error: Optional[str] = None,
    ) -> AnalysisRun:
        """Create a new run history record."""
        run = AnalysisRun(
            id=run_id or self.generate_id("run"),
            project_id=project_id,
            started_at=started_at,
            finished_at=finished_at,
            execution_seconds=execution_seconds,
            strategy=strategy,
            token_limit=token_limit,
            max_opinions=max_opinions,
            backlog_count=backlog_count,
            selected_count=selected_count,
            deferred_count=deferred_count,
            api_calls_used=api_calls_used,
            used_fallback=used_fallback,
            urgency=urgency,
            summary=summary,
            report=report,
            error=error,
            status=status,
        )
        return await self.add(run)
