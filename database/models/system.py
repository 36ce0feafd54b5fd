"""
System Models

Models for system tracking: analysis run history.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Float, DateTime, Text, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AnalysisRun(Base):
    """
    History of analysis runs.

    Records each pipeline execution for a project with its statistics,
    the full report and the status. Useful for monitoring and debugging.
    """
    __tablename__ = "analysis_runs"

    # Primary key
    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # Timing
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    execution_seconds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    # Options
    strategy: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    token_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_opinions: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Statistics
    backlog_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    selected_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    deferred_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    api_calls_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    used_fallback: Mapped[Optional[bool]] = mapped_column(nullable=True)

    # Result
    urgency: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    report: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # 'success', 'empty', 'failed'

    __table_args__ = (
        Index('idx_analysis_runs_project_started', 'project_id', 'started_at'),
    )
