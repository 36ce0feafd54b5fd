"""
LLM Call History Repository

Persists the LLM call records of analysis runs.
"""
from typing import Any, Dict, Iterable, List

from database.models import LLMCallHistory
from .base import BaseRepository


class LLMHistoryRepository(BaseRepository[LLMCallHistory]):
    """Repository for LLM call history operations."""

    model = LLMCallHistory

    async def add_records(self, records: Iterable[Dict[str, Any]]) -> List[LLMCallHistory]:
        """
        Persist call records produced by the LLM clients.

        Args:
            records: Dicts as returned by LLMCallRecord.to_dict()
        """
        rows = [LLMCallHistory(**record) for record in records]
        if not rows:
            return []
        return await self.add_all(rows)
