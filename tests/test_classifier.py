"""Tests for the single-call classification step."""

from __future__ import annotations

import json

import pytest

from analysis.classifier import (
    AssignToExisting,
    CallBudget,
    ClassificationError,
    ClassificationOrchestrator,
    CreateNew,
    FALLBACK_CONFIDENCE,
    ResponseParser,
    RetryPolicy,
    TASK_TYPE,
    build_fallback_outcome,
    clamp_confidence,
)
from analysis.errors import AnalysisError, ErrorCode
from tests.conftest import NOW, FakeLLMClient, make_scored, make_topic


SELECTED = [
    make_scored("op-1", 80, content="Buses are always late in the morning"),
    make_scored("op-2", 60, content="The bus schedule should be published online"),
    make_scored("op-3", 40, content="Parking near the station is too expensive"),
]


def _valid_response() -> str:
    return json.dumps({
        "classifications": [
            {"opinionId": "op-1", "action": "CREATE_NEW_TOPIC", "newTopicCluster": "c1",
             "confidence": 0.9, "reasoning": "Bus punctuality"},
            {"opinionId": "op-2", "action": "CREATE_NEW_TOPIC", "newTopicCluster": "c1",
             "confidence": 0.7, "reasoning": "Bus schedule"},
            {"opinionId": "op-3", "action": "ASSIGN_TO_EXISTING", "targetTopicId": "topic-1",
             "confidence": 0.95, "reasoning": "Parking",
             "alternativeOptions": [
                 {"action": "CREATE_NEW_TOPIC", "targetId": "c1", "confidence": 0.1},
                 {"action": "SOMETHING_ELSE", "targetId": "x", "confidence": 0.2},
             ]},
        ],
        "newTopicClusters": [
            {"clusterId": "c1", "suggestedName": "Bus service", "suggestedSummary": "Buses",
             "opinionIds": ["op-1", "op-2", "op-99"], "keywords": ["bus"], "confidence": 0.8},
            {"clusterId": "c-unused", "suggestedName": "Nobody", "opinionIds": []},
        ],
        "insights": [
            {"type": "concern", "title": "Reliability", "description": "Buses are unreliable",
             "affectedOpinions": ["op-1", "op-2"]},
            {"type": "rumour", "title": "Bad", "description": "Unknown type"},
        ],
    })


@pytest.fixture
def orchestrator_factory(no_wait_retry: RetryPolicy):
    def factory(*script, include_insights: bool = True, strict: bool = True):
        client = FakeLLMClient(*script)
        orchestrator = ClassificationOrchestrator(
            client=client,
            retry_policy=no_wait_retry,
            include_insights=include_insights,
            strict=strict,
        )
        return orchestrator, client
    return factory


class TestClassify:
    def test_valid_response(self, orchestrator_factory):
        orchestrator, client = orchestrator_factory(_valid_response())
        budget = CallBudget()

        outcome = orchestrator.classify(SELECTED, [make_topic()], budget, run_id="run-1", now=NOW)

        assert budget.used == 1
        assert client.call_count == 1
        assert not outcome.metadata.used_fallback
        assert outcome.decision_for("op-3").target == AssignToExisting(topic_id="topic-1")
        assert outcome.decision_for("op-1").target == CreateNew(cluster_id="c1")
        assert outcome.assigned_count == 1
        assert outcome.created_count == 2

        # membership follows the decisions; unused proposal dropped
        assert [c.cluster_id for c in outcome.clusters] == ["c1"]
        assert outcome.cluster("c1").opinion_ids == ["op-1", "op-2"]

        assert [i.title for i in outcome.insights] == ["Reliability"]
        assert [r.kind for r in outcome.rejected] == ["insight"]
        assert len(outcome.decision_for("op-3").alternatives) == 1

    def test_call_record_is_tagged_with_run(self, orchestrator_factory):
        orchestrator, client = orchestrator_factory(_valid_response())
        orchestrator.classify(SELECTED, [make_topic()], CallBudget(), run_id="run-42", now=NOW)

        records = client.drain_pending_logs()
        assert len(records) == 1
        assert records[0].task_type == TASK_TYPE
        assert records[0].run_id == "run-42"
        assert records[0].is_valid_json
        assert client.drain_pending_logs() == []

    def test_malformed_output_uses_fallback(self, orchestrator_factory):
        orchestrator, client = orchestrator_factory("Sorry, I cannot produce that right now.")
        budget = CallBudget()

        outcome = orchestrator.classify(SELECTED, [make_topic()], budget, now=NOW)

        assert budget.used == 1
        assert outcome.metadata.used_fallback
        assert outcome.metadata.fallback_reason
        assert len(outcome.decisions) == len(SELECTED)
        assert all(isinstance(d.target, CreateNew) for d in outcome.decisions)
        assert {d.confidence for d in outcome.decisions} == {FALLBACK_CONFIDENCE}
        assert outcome.insights == []
        assert [c.opinion_ids for c in outcome.clusters] == [["op-1"], ["op-2"], ["op-3"]]

    def test_json_without_usable_decisions_uses_fallback(self, orchestrator_factory):
        response = json.dumps({"classifications": [
            {"opinionId": "op-unknown", "action": "CREATE_NEW_TOPIC", "newTopicCluster": "c1"},
            {"opinionId": "op-1", "action": "ASSIGN_TO_EXISTING", "targetTopicId": "missing"},
        ]})
        orchestrator, _ = orchestrator_factory(response)

        outcome = orchestrator.classify(SELECTED, [make_topic()], CallBudget(), now=NOW)

        assert outcome.metadata.used_fallback
        assert len(outcome.decisions) == 3

    def test_orphan_cluster_gets_synthesized_proposal(self, orchestrator_factory):
        response = json.dumps({"classifications": [
            {"opinionId": "op-1", "action": "CREATE_NEW_TOPIC", "newTopicCluster": "orphan", "confidence": 0.8},
        ]})
        orchestrator, _ = orchestrator_factory(response)

        outcome = orchestrator.classify(SELECTED, [], CallBudget(), now=NOW)

        proposal = outcome.cluster("orphan")
        assert proposal is not None
        assert proposal.synthesized
        assert proposal.opinion_ids == ["op-1"]
        assert proposal.name == "Buses are always lat..."
        # opinions the model skipped stay undecided
        assert outcome.decision_for("op-2") is None

    def test_insights_dropped_when_disabled(self, orchestrator_factory):
        orchestrator, client = orchestrator_factory(_valid_response(), include_insights=False)

        outcome = orchestrator.classify(SELECTED, [make_topic()], CallBudget(), now=NOW)

        assert outcome.insights == []
        assert "Extract cross-opinion insights" not in client.prompts[0]

    def test_empty_selection_makes_no_call(self, orchestrator_factory):
        orchestrator, client = orchestrator_factory(_valid_response())
        budget = CallBudget()

        outcome = orchestrator.classify([], [make_topic()], budget)

        assert budget.used == 0
        assert client.call_count == 0
        assert outcome.decisions == []

    def test_budget_allows_one_call_per_run(self, orchestrator_factory):
        orchestrator, client = orchestrator_factory(_valid_response())
        budget = CallBudget()
        orchestrator.classify(SELECTED, [make_topic()], budget, now=NOW)

        with pytest.raises(AnalysisError) as excinfo:
            orchestrator.classify(SELECTED, [make_topic()], budget, now=NOW)

        assert excinfo.value.code == ErrorCode.CALL_BUDGET_EXHAUSTED
        assert client.call_count == 1


class TestRetry:
    def test_transport_failures_are_retried_within_one_budgeted_call(self, orchestrator_factory, no_wait_retry):
        orchestrator, client = orchestrator_factory(
            ConnectionError("reset"), TimeoutError("timeout"), _valid_response(),
        )
        budget = CallBudget()

        outcome = orchestrator.classify(SELECTED, [make_topic()], budget, now=NOW)

        assert client.call_count == 3
        assert budget.used == 1
        assert outcome.metadata.attempts == 3
        assert no_wait_retry.waits == [1.0, 2.0]

    def test_exhausted_retries_raise_transport_failure(self, orchestrator_factory, no_wait_retry):
        orchestrator, client = orchestrator_factory(ConnectionError("down"))

        with pytest.raises(ClassificationError) as excinfo:
            orchestrator.classify(SELECTED, [make_topic()], CallBudget(), now=NOW)

        assert excinfo.value.code == ErrorCode.TRANSPORT_FAILURE
        assert excinfo.value.details["attempts"] == 3
        assert client.call_count == 3
        assert no_wait_retry.waits == [1.0, 2.0]

    def test_linear_delay(self):
        policy = RetryPolicy(max_attempts=5, base_delay=0.5)
        assert [policy.delay(n) for n in range(1, 5)] == [0.5, 1.0, 1.5, 2.0]


class TestPrompt:
    def test_prompt_lists_opinions_and_topics(self, orchestrator_factory):
        orchestrator, _ = orchestrator_factory()
        prompt = orchestrator.build_prompt(SELECTED, [make_topic()], now=NOW)

        for opinion in SELECTED:
            assert f"[ID: {opinion.opinion_id}]" in prompt
        assert "[ID: topic-1]" in prompt
        assert '"totalProcessed": 3' in prompt
        assert NOW.isoformat() in prompt

    def test_prompt_without_topics(self, orchestrator_factory):
        orchestrator, _ = orchestrator_factory()
        prompt = orchestrator.build_prompt(SELECTED, [], now=NOW)

        assert "None (first analysis)" in prompt


class TestResponseParser:
    def test_code_block_and_trailing_commas(self):
        text = (
            "Here you go:\n```json\n"
            '{"classifications": [{"opinionId": "op-1", "action": "CREATE_NEW_TOPIC", '
            '"newTopicCluster": "c1", "confidence": 0.8,},],}\n```'
        )
        payload = ResponseParser().parse(text, {"op-1"}, set())

        assert payload.error is None
        assert payload.is_usable
        assert payload.decisions[0].confidence == 0.8

    def test_unparsable_payload(self):
        payload = ResponseParser().parse("{not json at all}", {"op-1"}, set())

        assert payload.error is not None
        assert not payload.is_usable

    def test_per_item_rejection(self):
        text = json.dumps({"classifications": [
            {"opinionId": "op-1", "action": "ASSIGN_TO_EXISTING", "targetTopicId": "t1", "confidence": 7},
            {"opinionId": "op-1", "action": "ASSIGN_TO_EXISTING", "targetTopicId": "t1"},
            {"opinionId": "op-2", "action": "CREATE_NEW_TOPIC"},
            {"opinionId": ["op-2"], "action": "CREATE_NEW_TOPIC", "newTopicCluster": "c"},
            "garbage",
        ]})
        payload = ResponseParser(strict=True).parse(text, {"op-1", "op-2"}, {"t1"})

        assert [d.opinion_id for d in payload.decisions] == ["op-1"]
        assert payload.decisions[0].confidence == 1.0
        assert len(payload.rejected) == 4

    def test_non_strict_mode_drops_silently(self):
        text = json.dumps({"classifications": [{"opinionId": "nope", "action": "CREATE_NEW_TOPIC"}]})
        payload = ResponseParser(strict=False).parse(text, {"op-1"}, set())

        assert payload.decisions == []
        assert payload.rejected == []

    def test_cluster_validation(self):
        text = json.dumps({"newTopicClusters": [
            {"clusterId": "c1", "suggestedName": "Ok", "opinionIds": ["op-1", 5, "op-x"]},
            {"clusterId": "c1", "suggestedName": "Duplicate", "opinionIds": []},
            {"clusterId": "c2", "opinionIds": []},
            {"clusterId": "c3", "suggestedName": "Bad ids", "opinionIds": "op-1"},
        ]})
        payload = ResponseParser().parse(text, {"op-1"}, set())

        assert [c.cluster_id for c in payload.clusters] == ["c1"]
        assert payload.clusters[0].opinion_ids == ["op-1"]
        assert len(payload.rejected) == 3

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(0.4, 0.4), (-1, 0.0), (3, 1.0), ("high", 0.5), (None, 0.5), (True, 0.5)],
    )
    def test_clamp_confidence(self, value, expected):
        assert clamp_confidence(value) == expected


def test_fallback_outcome_shape():
    outcome = build_fallback_outcome(SELECTED, "no JSON")

    assert outcome.metadata.used_fallback
    assert outcome.metadata.fallback_reason == "no JSON"
    assert [c.cluster_id for c in outcome.clusters] == [
        "fallback_cluster_op-1", "fallback_cluster_op-2", "fallback_cluster_op-3",
    ]
    assert outcome.clusters[0].summary == "Opinions about: Buses are always late in the morning"
