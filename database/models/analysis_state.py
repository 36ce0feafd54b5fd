"""
Opinion Analysis State Model

Per-opinion bookkeeping of the continuous analysis flow.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Float, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class OpinionAnalysisState(Base, TimestampMixin):
    """
    Analysis state of one opinion.

    One row per opinion (opinion_id is the primary key). Created the first
    time the pipeline touches the opinion, never deleted.

    - last_analyzed_at: None until the opinion is classified
    - analysis_version: +1 on every touch, never decreases
    - classification_confidence: set whenever last_analyzed_at is set
    """
    __tablename__ = "opinion_analysis_states"

    opinion_id: Mapped[str] = mapped_column(
        String(50), ForeignKey("opinions.id", ondelete="CASCADE"), primary_key=True
    )
    project_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    last_analyzed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    analysis_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    topic_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    classification_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    manual_review_flag: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index('idx_analysis_states_project_analyzed', 'project_id', 'last_analyzed_at'),
    )
