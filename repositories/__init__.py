"""
SQLAlchemy-based Repositories

This package provides async repository pattern using SQLAlchemy ORM.

Usage:
    from repositories import OpinionRepository
    from database import get_session

    async with get_session() as session:
        repo = OpinionRepository(session)
        backlog = await repo.get_unanalyzed("prj_1")
"""

from .base import BaseRepository
from .projects import ProjectRepository, OpinionRepository, TopicRepository
from .analysis_state import AnalysisStateRepository
from .analysis_runs import AnalysisRunRepository
from .llm_history import LLMHistoryRepository

__all__ = [
    "BaseRepository",
    # Projects
    "ProjectRepository",
    "OpinionRepository",
    "TopicRepository",
    # Analysis
    "AnalysisStateRepository",
    "AnalysisRunRepository",
    # System
    "LLMHistoryRepository",
]
