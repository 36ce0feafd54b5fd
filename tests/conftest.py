"""Pytest configuration and fixtures for the opinion analysis tests.

Provides a temporary on-disk database, a scripted model client and
builders for scored opinions and seeded projects.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

import pytest
import pytest_asyncio
from sqlalchemy import select

from analysis.classifier import RetryPolicy
from analysis.scorer import ScoredOpinion, TopicSnapshot
from database import close_engine, create_tables, get_session, init_engine
from llm import LLMClient, LLMResponse, Message
from repositories import AnalysisStateRepository, OpinionRepository, ProjectRepository, TopicRepository


NOW = datetime(2026, 3, 1, 12, 0, 0)

Script = Union[str, Exception, Callable[[str], str]]


class FakeLLMClient(LLMClient):
    """In-memory client replaying scripted responses.

    Each script entry is a response string, an exception to raise, or a
    callable building the response from the prompt. The last entry repeats.
    """

    provider = "fake"

    def __init__(self, *script: Script, model: str = "fake-model"):
        super().__init__(api_key="test-key", model=model)
        self.script = list(script) or ["{}"]
        self.prompts: List[str] = []

    @property
    def call_count(self) -> int:
        return len(self.prompts)

    def chat(
        self,
        messages: List[Message],
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        model: Optional[str] = None,
    ) -> LLMResponse:
        prompt = messages[-1].content
        self.prompts.append(prompt)
        step = self.script[min(len(self.prompts) - 1, len(self.script) - 1)]

        if isinstance(step, Exception):
            raise step
        content = step(prompt) if callable(step) else step

        response = LLMResponse(
            content=content,
            model=model or self.model,
            usage={"input_tokens": len(prompt), "output_tokens": len(content)},
            stop_reason="stop",
            latency_ms=1,
        )
        self.log_call(messages, system, response, max_tokens, temperature)
        return response


def opinion_ids_in_prompt(prompt: str) -> List[str]:
    """Opinion ids listed in a classification prompt (ids start with 'op-')."""
    return re.findall(r"\[ID: (op-[^\]]+)\]", prompt)


def new_topic_response(prompt: str) -> str:
    """Valid response putting every opinion of the prompt into one new cluster."""
    ids = opinion_ids_in_prompt(prompt)
    return json.dumps({
        "classifications": [
            {
                "opinionId": opinion_id,
                "action": "CREATE_NEW_TOPIC",
                "newTopicCluster": "cluster_1",
                "confidence": 0.9,
                "reasoning": "Shared subject",
            }
            for opinion_id in ids
        ],
        "newTopicClusters": [
            {
                "clusterId": "cluster_1",
                "suggestedName": "Public transport",
                "suggestedSummary": "Opinions about buses and stops",
                "opinionIds": ids,
                "keywords": ["bus", "stop"],
                "confidence": 0.9,
            }
        ],
        "insights": [],
    })


def make_scored(
    opinion_id: str,
    priority: int,
    token_count: int = 40,
    content: str = "Sample opinion content",
    submitted_at: datetime = NOW,
) -> ScoredOpinion:
    """Build a ScoredOpinion directly (bypasses the scorer)."""
    return ScoredOpinion(
        opinion_id=opinion_id,
        content=content,
        submitted_at=submitted_at,
        priority=priority,
        token_count=token_count,
        reasons=[],
    )


def make_topic(topic_id: str = "topic-1", name: str = "Parking", count: int = 3) -> TopicSnapshot:
    return TopicSnapshot(id=topic_id, name=name, summary="Parking spaces", count=count, keywords=[])


async def seed_project(
    project_id: str = "proj-1",
    name: str = "City Feedback",
    opinions: Optional[list] = None,
    topics: Optional[list] = None,
) -> None:
    """Create a project with (id, content, submitted_at) opinions and (id, name) topics."""
    async with get_session() as session:
        await ProjectRepository(session).create_project(name=name, project_id=project_id)
        topic_repo = TopicRepository(session)
        for topic_id, topic_name in topics or []:
            await topic_repo.create_topic(project_id, topic_name, summary=f"About {topic_name}",
                                          topic_id=topic_id)
        opinion_repo = OpinionRepository(session)
        for opinion_id, content, submitted_at in opinions or []:
            await opinion_repo.create_opinion(project_id, content, submitted_at, opinion_id=opinion_id)


async def fetch_all(model, **filters) -> list:
    """Rows of one table, filtered by column equality."""
    async with get_session() as session:
        result = await session.execute(select(model).filter_by(**filters))
        return list(result.scalars().all())


class FlakyStateRepository(AnalysisStateRepository):
    """Fails the analyzed upsert of one opinion."""

    def __init__(self, session, failing_id: str):
        super().__init__(session)
        self.failing_id = failing_id

    async def upsert_analyzed(self, opinion_id, *args, **kwargs):
        if opinion_id == self.failing_id:
            raise RuntimeError("disk full")
        return await super().upsert_analyzed(opinion_id, *args, **kwargs)


def aged_opinions(count: int, days_old: int = 10) -> list:
    """Short English opinions submitted `days_old` days before NOW, one minute apart."""
    return [
        (f"op-{i:02d}", f"The bus stop sign is faded {i:02d}", NOW - timedelta(days=days_old, minutes=count - i))
        for i in range(1, count + 1)
    ]


@pytest.fixture
def no_wait_retry() -> RetryPolicy:
    """Retry policy that records waits instead of sleeping."""
    waits: List[float] = []
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, sleep=waits.append)
    policy.waits = waits
    return policy


@pytest_asyncio.fixture()
async def database(tmp_path):
    """Fresh sqlite+aiosqlite database file per test."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'analysis.db'}"
    await init_engine(url)
    await create_tables()
    try:
        yield url
    finally:
        await close_engine()
