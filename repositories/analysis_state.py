"""
Analysis State Repository

Per-opinion analysis state. Every write is an upsert that creates the row
with version 1 or bumps the existing version by exactly one.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import select, func

from database.models import OpinionAnalysisState
from .base import BaseRepository


class AnalysisStateRepository(BaseRepository[OpinionAnalysisState]):
    """Repository for opinion analysis state operations."""

    model = OpinionAnalysisState

    async def count_analyzed(self, project_id: str) -> int:
        """Count opinions of a project that have been analyzed at least once."""
        stmt = (
            select(func.count())
            .select_from(OpinionAnalysisState)
            .where(
                OpinionAnalysisState.project_id == project_id,
                OpinionAnalysisState.last_analyzed_at.is_not(None),
            )
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def upsert_analyzed(
        self,
        opinion_id: str,
        project_id: str,
        analyzed_at: datetime,
        topic_id: Optional[str],
        confidence: float,
        manual_review: bool,
    ) -> OpinionAnalysisState:
        """Mark an opinion as analyzed."""
        state = await self.get(opinion_id)
        if state is None:
            state = OpinionAnalysisState(
                opinion_id=opinion_id,
                project_id=project_id,
                analysis_version=1,
            )
            self.session.add(state)
        else:
            state.analysis_version = state.analysis_version + 1

        state.last_analyzed_at = analyzed_at
        state.topic_id = topic_id
        state.classification_confidence = confidence
        state.manual_review_flag = manual_review
        await self.session.flush()
        return state

    async def upsert_deferred(
        self,
        opinion_id: str,
        project_id: str,
        manual_review: bool,
    ) -> OpinionAnalysisState:
        """Touch a deferred opinion; last_analyzed_at is left as it is."""
        state = await self.get(opinion_id)
        if state is None:
            state = OpinionAnalysisState(
                opinion_id=opinion_id,
                project_id=project_id,
                analysis_version=1,
            )
            self.session.add(state)
        else:
            state.analysis_version = state.analysis_version + 1

        state.manual_review_flag = manual_review
        await self.session.flush()
        return state
