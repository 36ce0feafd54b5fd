"""
LLM Call History Model

Stores every LLM API call made during analysis runs.
"""
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlalchemy import String, Integer, Float, DateTime, Text, Boolean, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class LLMCallHistory(Base):
    """
    LLM call record.

    Stores the full input/output of a call plus usage and latency.
    Can be exported to chat-message format for prompt review:
    {"messages": [{"role": "system", ...}, {"role": "user", ...}, {"role": "assistant", ...}]}
    """
    __tablename__ = "llm_call_history"

    # Primary key
    id: Mapped[str] = mapped_column(String(50), primary_key=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # Request details
    provider: Mapped[str] = mapped_column(String(30), nullable=False)
    model: Mapped[str] = mapped_column(String(80), nullable=False)
    system_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    messages: Mapped[List[Dict[str, str]]] = mapped_column(JSON, nullable=False)

    # Response
    response: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Token usage
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Request parameters
    temperature: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    max_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=4096)

    # Performance
    latency_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    stop_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Context
    task_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # 'main_analysis'
    run_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_valid_json: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    __table_args__ = (
        Index('idx_llm_history_task_date', 'task_type', 'timestamp'),
        Index('idx_llm_history_run', 'run_id'),
    )

    def to_chat_format(self) -> Dict[str, Any]:
        """Export the call as a messages list ending with the assistant reply."""
        messages = list(self.messages)
        messages.append({"role": "assistant", "content": self.response})
        return {"messages": messages}

    def __repr__(self) -> str:
        return f"<LLMCallHistory(id={self.id}, task={self.task_type}, tokens={self.total_tokens})>"
