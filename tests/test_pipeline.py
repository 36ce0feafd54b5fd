"""End-to-end tests for PipelineCoordinator against a temporary database."""

from __future__ import annotations

from collections import Counter

import pytest

from analysis import AnalysisError, AnalysisOptions, ErrorCode, PipelineCoordinator
from analysis.continuation import ContinuationTracker, TopicUpdater
from analysis.pipeline import performance_score
from database import get_session
from database.models import LLMCallHistory, Opinion, OpinionAnalysisState, Topic
from repositories import AnalysisRunRepository, TopicRepository
from tests.conftest import (
    NOW,
    FakeLLMClient,
    FlakyStateRepository,
    aged_opinions,
    fetch_all,
    new_topic_response,
    seed_project,
)


GREEDY = AnalysisOptions(token_limit=4000, max_opinions=15, strategy="greedy_priority")


class FailingOnceTracker(ContinuationTracker):
    """Fails one opinion's analyzed state write in its first run only."""

    def __init__(self, failing_id: str, **kwargs):
        super().__init__(**kwargs)
        self.failing_id = failing_id

    async def apply(self, session, *args, **kwargs):
        if self.failing_id is not None:
            kwargs["state_repo"] = FlakyStateRepository(session, self.failing_id)
            self.failing_id = None
        return await super().apply(session, *args, **kwargs)


class BrokenTopicUpdater(TopicUpdater):
    """Writes its topic changes, then fails before the commit."""

    async def apply(self, project_id, outcome):
        await super().apply(project_id, outcome)
        raise RuntimeError("database is locked")


@pytest.fixture
def coordinator_factory(no_wait_retry):
    def factory(*script):
        client = FakeLLMClient(*script)
        coordinator = PipelineCoordinator(client=client, retry_policy=no_wait_retry, clock=lambda: NOW)
        return coordinator, client
    return factory


async def _states():
    return {s.opinion_id: s for s in await fetch_all(OpinionAnalysisState)}


@pytest.mark.asyncio
async def test_twenty_short_old_opinions(database, coordinator_factory):
    await seed_project(opinions=aged_opinions(20))
    coordinator, client = coordinator_factory(new_topic_response)

    report = await coordinator.run("proj-1", GREEDY)

    summary = report["execution_summary"]
    assert summary["backlog_count"] == 20
    assert summary["new_opinions_processed"] == 15
    assert summary["unprocessed_opinions"] == 5
    assert summary["api_calls_used"] == 1
    assert client.call_count == 1

    priorities = report["processing_stats"]["priority_calculation"]
    assert priorities["high_priority_count"] == 0
    assert priorities["average_priority"] <= 20
    assert report["processing_stats"]["selection_optimization"]["bounding_constraint"] == "opinion_limit"

    assert report["recommendations"]["next_analysis_urgency"] == "when_convenient"
    assert report["continuation_info"]["completion_rate"] == 75.0
    assert report["topic_updates"]["created_count"] == 1
    assert report["quality_metrics"]["data_integrity_score"] == 100.0
    assert report["quality_metrics"]["average_classification_confidence"] == 0.9

    states = await _states()
    analyzed = {opinion_id for opinion_id, s in states.items() if s.last_analyzed_at is not None}
    assert analyzed == {f"op-{i:02d}" for i in range(1, 16)}
    assert len(states) == 20

    async with get_session() as session:
        topics = await TopicRepository(session).get_by_project("proj-1")
        run = await AnalysisRunRepository(session).get_latest("proj-1")
    calls = await fetch_all(LLMCallHistory, run_id=report["analysis_id"])

    assert [t.count for t in topics] == [15]
    assert run.id == report["analysis_id"]
    assert run.status == "success"
    assert run.api_calls_used == 1
    assert run.deferred_count == 5
    assert len(calls) == 1
    assert calls[0].task_type == "main_analysis"


@pytest.mark.asyncio
async def test_malformed_output_still_produces_full_report(database, coordinator_factory):
    await seed_project(opinions=aged_opinions(4))
    coordinator, _ = coordinator_factory("I could not analyze these opinions, sorry.")

    report = await coordinator.run("proj-1", GREEDY)

    assert report["execution_summary"]["api_calls_used"] == 1
    classification = report["processing_stats"]["classification"]
    assert classification["used_fallback"]
    assert classification["new_topic_decisions"] == 4
    assert classification["insights_extracted"] == 0
    assert report["topic_updates"]["created_count"] == 4
    assert report["quality_metrics"]["average_classification_confidence"] == 0.3
    assert report["quality_metrics"]["manual_review_required"] == 4
    assert report["recommendations"]["next_analysis_urgency"] == "not_needed"


@pytest.mark.asyncio
async def test_empty_backlog(database, coordinator_factory):
    await seed_project()
    coordinator, client = coordinator_factory(new_topic_response)

    report = await coordinator.run("proj-1", GREEDY)

    assert report["status"] == "empty"
    assert report["execution_summary"]["api_calls_used"] == 0
    assert report["execution_summary"]["new_opinions_processed"] == 0
    assert report["continuation_info"]["completion_rate"] == 100.0
    assert report["recommendations"]["next_analysis_urgency"] == "not_needed"
    assert client.call_count == 0

    async with get_session() as session:
        run = await AnalysisRunRepository(session).get_latest("proj-1")
    assert run.status == "empty"


@pytest.mark.asyncio
async def test_missing_project_fails_before_any_call(database, coordinator_factory):
    coordinator, client = coordinator_factory(new_topic_response)

    with pytest.raises(AnalysisError) as excinfo:
        await coordinator.run("missing", GREEDY)

    assert excinfo.value.code == ErrorCode.NOT_FOUND
    assert excinfo.value.to_dict()["details"] == {"project_id": "missing"}
    assert client.call_count == 0


@pytest.mark.asyncio
async def test_transport_failure_is_fatal_and_recorded(database, coordinator_factory, no_wait_retry):
    await seed_project(opinions=aged_opinions(3))
    coordinator, client = coordinator_factory(ConnectionError("connection refused"))

    with pytest.raises(AnalysisError) as excinfo:
        await coordinator.run("proj-1", GREEDY)

    assert excinfo.value.code == ErrorCode.TRANSPORT_FAILURE
    assert client.call_count == no_wait_retry.max_attempts
    assert await _states() == {}

    async with get_session() as session:
        run = await AnalysisRunRepository(session).get_latest("proj-1")
        topics = await TopicRepository(session).get_by_project("proj-1")
    assert run.status == "failed"
    assert run.api_calls_used == 1
    assert "TRANSPORT_FAILURE" in run.error
    assert topics == []


@pytest.mark.asyncio
async def test_versions_only_increase_across_runs(database, coordinator_factory):
    await seed_project(opinions=aged_opinions(20))
    coordinator, client = coordinator_factory(new_topic_response)

    await coordinator.run("proj-1", GREEDY)
    first = {opinion_id: s.analysis_version for opinion_id, s in (await _states()).items()}

    second_report = await coordinator.run("proj-1", GREEDY)
    second = await _states()

    assert second_report["execution_summary"]["new_opinions_processed"] == 5
    assert all(second[opinion_id].analysis_version >= version for opinion_id, version in first.items())
    assert second["op-20"].analysis_version == 2
    assert second["op-01"].analysis_version == 1
    assert all(s.last_analyzed_at is not None for s in second.values())

    third_report = await coordinator.run("proj-1", GREEDY)
    assert third_report["execution_summary"]["api_calls_used"] == 0
    assert client.call_count == 2


@pytest.mark.asyncio
async def test_status_query(database, coordinator_factory):
    await seed_project(opinions=aged_opinions(20))
    coordinator, _ = coordinator_factory(new_topic_response)
    report = await coordinator.run("proj-1", GREEDY)

    status = await coordinator.get_status("proj-1")

    assert status["total_opinions"] == 20
    assert status["unanalyzed_opinions"] == 5
    assert status["estimated_next_analysis_size"] == 5
    assert status["last_run"]["id"] == report["analysis_id"]


@pytest.mark.asyncio
async def test_failed_state_write_keeps_topic_counts_consistent(database, no_wait_retry):
    await seed_project(opinions=aged_opinions(3))
    client = FakeLLMClient(new_topic_response)
    coordinator = PipelineCoordinator(
        client=client,
        tracker=FailingOnceTracker("op-02", clock=lambda: NOW),
        retry_policy=no_wait_retry,
        clock=lambda: NOW,
    )

    first = await coordinator.run("proj-1", GREEDY)
    assert first["state_updates"]["error_count"] == 1
    assert first["quality_metrics"]["data_integrity_score"] < 100

    second = await coordinator.run("proj-1", GREEDY)
    assert second["execution_summary"]["new_opinions_processed"] == 1
    assert (await _states())["op-02"].last_analyzed_at == NOW

    members = Counter(o.topic_id for o in await fetch_all(Opinion) if o.topic_id)
    counts = {t.id: t.count for t in await fetch_all(Topic) if t.count}
    assert counts == dict(members)
    assert sum(counts.values()) == 3


@pytest.mark.asyncio
async def test_nothing_fits_the_budget(database, coordinator_factory):
    await seed_project(opinions=aged_opinions(3))
    coordinator, client = coordinator_factory(new_topic_response)
    tiny = AnalysisOptions(token_limit=10, max_opinions=15, strategy="greedy_priority")

    report = await coordinator.run("proj-1", tiny)

    summary = report["execution_summary"]
    assert summary["backlog_count"] == 3
    assert summary["new_opinions_processed"] == 0
    assert summary["unprocessed_opinions"] == 3
    assert summary["api_calls_used"] == 0
    assert not report["processing_stats"]["classification"]["used_fallback"]
    assert report["recommendations"]["next_analysis_urgency"] == "when_convenient"
    assert client.call_count == 0

    states = await _states()
    assert set(states) == {"op-01", "op-02", "op-03"}
    assert all(s.last_analyzed_at is None and s.analysis_version == 1 for s in states.values())

    await coordinator.run("proj-1", tiny)
    assert {s.analysis_version for s in (await _states()).values()} == {2}
    assert client.call_count == 0
    assert await fetch_all(Topic) == []


@pytest.mark.asyncio
async def test_topic_transaction_failure(database, coordinator_factory, monkeypatch):
    await seed_project(opinions=aged_opinions(3))
    coordinator, client = coordinator_factory(new_topic_response)
    monkeypatch.setattr("analysis.pipeline.TopicUpdater", BrokenTopicUpdater)

    with pytest.raises(AnalysisError) as excinfo:
        await coordinator.run("proj-1", GREEDY)

    error = excinfo.value.to_dict()
    assert error["code"] == "TRANSACTION_FAILURE"
    assert error["details"] == {"stage": "topic_update"}
    assert client.call_count == 1

    assert await _states() == {}
    assert await fetch_all(Topic) == []
    assert all(o.topic_id is None for o in await fetch_all(Opinion))

    async with get_session() as session:
        run = await AnalysisRunRepository(session).get_latest("proj-1")
    assert run.status == "failed"
    assert run.api_calls_used == 1
    assert "TRANSACTION_FAILURE" in run.error
    assert len(await fetch_all(LLMCallHistory, run_id=run.id)) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "options",
    [
        AnalysisOptions(token_limit=4000, max_opinions=15, strategy="random"),
        AnalysisOptions(token_limit=0, max_opinions=15, strategy="balanced"),
        AnalysisOptions(token_limit=4000, max_opinions=0, strategy="balanced"),
    ],
)
async def test_invalid_options_are_rejected_before_any_work(database, coordinator_factory, options):
    await seed_project(opinions=aged_opinions(3))
    coordinator, client = coordinator_factory(new_topic_response)

    with pytest.raises(AnalysisError) as excinfo:
        await coordinator.run("proj-1", options)

    assert excinfo.value.code == ErrorCode.INVALID_OPTIONS
    assert client.call_count == 0
    assert await _states() == {}
    async with get_session() as session:
        assert await AnalysisRunRepository(session).get_latest("proj-1") is None


def test_report_helpers():
    assert performance_score(0, 20) == 100
    assert performance_score(10, 4) == 50
    assert performance_score(100, 0) == 0
