"""
Project Repository

Projects, their opinions and their topics.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, func, update, or_

from database.models import Project, Opinion, Topic, OpinionAnalysisState
from .base import BaseRepository


class ProjectRepository(BaseRepository[Project]):
    """Repository for project operations."""

    model = Project

    async def create_project(self, name: str, description: Optional[str] = None,
                             project_id: Optional[str] = None) -> Project:
        """Create a new project."""
        project = Project(
            id=project_id or self.generate_id("prj"),
            name=name,
            description=description,
        )
        return await self.add(project)

    async def mark_analyzed(
        self,
        project_id: str,
        analyzed_at: datetime,
        opinions_count: int,
    ) -> Optional[Project]:
        """Record the last analysis run on the project."""
        project = await self.get(project_id)
        if not project:
            return None

        project.last_analysis_at = analyzed_at
        project.last_analyzed_opinions_count = opinions_count
        project.is_analyzed = True
        await self.session.flush()
        return project


class OpinionRepository(BaseRepository[Opinion]):
    """Repository for opinion operations."""

    model = Opinion

    async def create_opinion(
        self,
        project_id: str,
        content: str,
        submitted_at: datetime,
        opinion_id: Optional[str] = None,
    ) -> Opinion:
        """Submit a new opinion."""
        opinion = Opinion(
            id=opinion_id or self.generate_id("op"),
            project_id=project_id,
            content=content,
            submitted_at=submitted_at,
        )
        return await self.add(opinion)

    async def get_unanalyzed(self, project_id: str) -> List[Opinion]:
        """
        Get the backlog of a project.

        An opinion is in the backlog when it has no analysis state yet, or its
        state was never marked analyzed. Oldest submissions come first.
        """
        stmt = (
            select(Opinion)
            .outerjoin(OpinionAnalysisState, OpinionAnalysisState.opinion_id == Opinion.id)
            .where(
                Opinion.project_id == project_id,
                or_(
                    OpinionAnalysisState.opinion_id.is_(None),
                    OpinionAnalysisState.last_analyzed_at.is_(None),
                ),
            )
            .order_by(Opinion.submitted_at.asc(), Opinion.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_project(self, project_id: str) -> int:
        """Count all opinions of a project."""
        stmt = select(func.count()).select_from(Opinion).where(Opinion.project_id == project_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def assign_topic(self, opinion: Opinion, topic_id: str) -> Optional[str]:
        """Point an opinion at a topic. Returns the topic it pointed at before."""
        previous = opinion.topic_id
        opinion.topic_id = topic_id
        await self.session.flush()
        return previous


class TopicRepository(BaseRepository[Topic]):
    """Repository for topic operations."""

    model = Topic

    async def get_by_project(self, project_id: str) -> List[Topic]:
        """Get all topics of a project, largest first."""
        stmt = (
            select(Topic)
            .where(Topic.project_id == project_id)
            .order_by(Topic.count.desc(), Topic.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def create_topic(
        self,
        project_id: str,
        name: str,
        summary: str = "",
        keywords: Optional[List[str]] = None,
        status: str = "UNHANDLED",
        count: int = 0,
        topic_id: Optional[str] = None,
    ) -> Topic:
        """Create a new topic."""
        topic = Topic(
            id=topic_id or self.generate_id("topic"),
            project_id=project_id,
            name=name,
            summary=summary,
            keywords=keywords,
            status=status,
            count=count,
        )
        return await self.add(topic)

    async def increment_count(self, topic_id: str, by: int = 1) -> bool:
        """Increase the member count of a topic. Returns False if missing."""
        stmt = update(Topic).where(Topic.id == topic_id).values(count=Topic.count + by)
        result = await self.session.execute(stmt)
        return result.rowcount > 0
