"""
OpenAI-compatible Client - OpenAI and Z.AI GLM.

Both providers speak the Chat Completions API, so one client serves both;
only the base URL and the default model differ.
API docs: https://docs.z.ai/guides/develop/openai/python
"""
import time
from typing import Optional, List

import httpx
from openai import OpenAI
from loguru import logger

from .base import LLMClient, LLMResponse, Message


class OpenAICompatibleClient(LLMClient):
    """
    Client for any endpoint implementing the OpenAI Chat Completions API.

    Uses the OpenAI SDK. base_url=None talks to api.openai.com.
    """

    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        verify_ssl: bool = True,
        provider: Optional[str] = None,
    ):
        """
        Initialize client.

        Args:
            api_key: Provider API key
            model: Default model name
            base_url: API base URL (None for OpenAI)
            timeout: Request timeout in seconds
            verify_ssl: Whether to verify SSL certificates (disable for dev if needed)
            provider: Provider name stored on call records
        """
        super().__init__(api_key, model)
        self.timeout = timeout
        if provider:
            self.provider = provider

        # Custom httpx client only when SSL verification is disabled
        http_client = None
        if not verify_ssl:
            http_client = httpx.Client(verify=False, timeout=timeout)
            logger.warning(f"SSL verification disabled for {self.provider} client")

        self._client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            http_client=http_client,
            max_retries=0,
        )

    def chat(
        self,
        messages: List[Message],
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate response from conversation."""
        api_messages = []
        if system:
            api_messages.append({"role": "system", "content": system})
        for msg in messages:
            api_messages.append({"role": msg.role, "content": msg.content})

        model = model or self.model
        logger.debug(f"{self.provider} request: model={model}, messages={len(api_messages)}")

        started = time.monotonic()
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=api_messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            logger.error(f"{self.provider} request failed: {e}")
            raise

        choice = response.choices[0]
        usage = response.usage
        result = LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage={
                "input_tokens": usage.prompt_tokens if usage else 0,
                "output_tokens": usage.completion_tokens if usage else 0,
            },
            stop_reason=choice.finish_reason,
            latency_ms=int((time.monotonic() - started) * 1000),
        )
        self.log_call(messages, system, result, max_tokens, temperature)
        return result


class GLMClient(OpenAICompatibleClient):
    """
    Z.AI GLM client using the OpenAI-compatible API.

    Note: Uses Coding Plan API endpoint by default.
    """

    API_BASE = "https://api.z.ai/api/coding/paas/v4"

    def __init__(self, api_key: str, model: str = "glm-4.7", timeout: float = 120.0,
                 verify_ssl: bool = True):
        super().__init__(
            api_key,
            model=model,
            base_url=self.API_BASE,
            timeout=timeout,
            verify_ssl=verify_ssl,
            provider="glm",
        )
