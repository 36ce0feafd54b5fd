"""
Project Models

Projects own opinions (submitted records) and topics (groupings).
"""
from datetime import datetime
from typing import Optional, List

from sqlalchemy import String, Integer, DateTime, Text, Boolean, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class Project(Base, TimestampMixin):
    """
    A project collecting opinions.

    The analysis pipeline only reads the name (for project keywords) and
    writes the last-analysis marker.
    """
    __tablename__ = "projects"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Analysis marker
    last_analysis_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_analyzed_opinions_count: Mapped[int] = mapped_column(Integer, default=0)
    is_analyzed: Mapped[bool] = mapped_column(Boolean, default=False)


class Opinion(Base, TimestampMixin):
    """
    One submitted opinion.

    Content and submission time never change after submission.
    topic_id is set when the opinion is assigned to a topic.
    """
    __tablename__ = "opinions"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    topic_id: Mapped[Optional[str]] = mapped_column(
        String(50), ForeignKey("topics.id", ondelete="SET NULL"), nullable=True, index=True
    )

    __table_args__ = (
        Index('idx_opinions_project_submitted', 'project_id', 'submitted_at'),
    )


class Topic(Base, TimestampMixin):
    """
    Named grouping of opinions.

    count is kept in step with the number of opinions pointing at the topic;
    both are written in the same transaction.
    """
    __tablename__ = "topics"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    project_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    keywords: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default='UNHANDLED', index=True)
