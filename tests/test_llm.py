"""Tests for the model-client layer and prompt templates."""

from __future__ import annotations

import pytest

from llm import (
    AnthropicClient,
    GLMClient,
    Message,
    OpenAICompatibleClient,
    get_client,
    get_llm_context,
    set_llm_context,
)
from prompts import PromptLoader
from tests.conftest import FakeLLMClient


class TestGetClient:
    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            get_client("carrier-pigeon", api_key="k")

    def test_missing_api_key(self):
        with pytest.raises(ValueError, match="API key required"):
            get_client("openai", api_key="")

    @pytest.mark.parametrize(
        ("provider", "client_class"),
        [("openai", OpenAICompatibleClient), ("glm", GLMClient), ("anthropic", AnthropicClient)],
    )
    def test_builds_provider_client(self, provider: str, client_class):
        client = get_client(provider, api_key="test-key", model="some-model")

        assert isinstance(client, client_class)
        assert client.model == "some-model"
        assert client.provider == provider


class TestCallRecords:
    def test_generate_queues_one_record_with_context(self):
        client = FakeLLMClient('{"ok": true}')
        set_llm_context(task_type="main_analysis", run_id="run-7")

        response = client.generate("Classify these", system="Be brief", max_tokens=100, temperature=0.3)

        assert response.content == '{"ok": true}'
        assert get_llm_context() == {"task_type": "main_analysis", "run_id": "run-7"}
        records = client.drain_pending_logs()
        assert len(records) == 1
        assert client.drain_pending_logs() == []
        record = records[0].to_dict()
        assert record["provider"] == "fake"
        assert record["user_prompt"] == "Classify these"
        assert record["system_prompt"] == "Be brief"
        assert record["messages"][0] == {"role": "system", "content": "Be brief"}
        assert record["run_id"] == "run-7"
        assert record["is_valid_json"] is True
        assert record["total_tokens"] == len("Classify these") + len('{"ok": true}')

    def test_records_are_not_kept_when_logging_disabled(self):
        client = FakeLLMClient("plain text")
        client.enable_logging = False

        client.chat([Message(role="user", content="hi")])

        assert client.drain_pending_logs() == []


class TestPrompts:
    def test_available_prompts(self):
        assert PromptLoader().list_prompts() == ["unified_analysis", "unified_analysis_insights"]

    def test_missing_variable(self):
        with pytest.raises(ValueError, match="Missing required variable"):
            PromptLoader().format("unified_analysis", opinions_section="x")

    def test_unknown_prompt(self):
        with pytest.raises(FileNotFoundError):
            PromptLoader().get("does_not_exist")
