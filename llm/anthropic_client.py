"""
Anthropic Client - Claude models via the Anthropic SDK.
"""
import time
from typing import Optional, List

import anthropic
import httpx
from loguru import logger

from .base import LLMClient, LLMResponse, Message


class AnthropicClient(LLMClient):
    """Anthropic Messages API client."""

    provider = "anthropic"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-haiku-latest",
        timeout: float = 120.0,
        verify_ssl: bool = True,
    ):
        super().__init__(api_key, model)
        self.timeout = timeout

        http_client = None
        if not verify_ssl:
            http_client = httpx.Client(verify=False, timeout=timeout)
            logger.warning("SSL verification disabled for anthropic client")

        self._client = anthropic.Anthropic(
            api_key=api_key,
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
        # System prompt is a top-level parameter, not a message
        api_messages = [
            {"role": msg.role, "content": msg.content}
            for msg in messages
            if msg.role != "system"
        ]
        kwargs = {}
        if system:
            kwargs["system"] = system

        model = model or self.model
        logger.debug(f"anthropic request: model={model}, messages={len(api_messages)}")

        started = time.monotonic()
        try:
            message = self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=api_messages,
                **kwargs,
            )
        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e}")
            raise

        text = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        result = LLMResponse(
            content=text,
            model=message.model,
            usage={
                "input_tokens": message.usage.input_tokens,
                "output_tokens": message.usage.output_tokens,
            },
            stop_reason=message.stop_reason,
            latency_ms=int((time.monotonic() - started) * 1000),
        )
        self.log_call(messages, system, result, max_tokens, temperature)
        return result
