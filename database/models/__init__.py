"""
SQLAlchemy ORM Models

This module defines all database models using SQLAlchemy ORM.
Models are organized by domain:
- Projects: projects, opinions and topics
- Analysis state: per-opinion continuous analysis bookkeeping
- System: analysis run history and LLM call history
"""

from .base import Base, TimestampMixin
from .projects import Project, Opinion, Topic
from .analysis_state import OpinionAnalysisState
from .system import AnalysisRun
from .llm_history import LLMCallHistory

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    # Projects
    "Project",
    "Opinion",
    "Topic",
    # Analysis state
    "OpinionAnalysisState",
    # System
    "AnalysisRun",
    # LLM
    "LLMCallHistory",
]
