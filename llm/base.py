"""
LLM Client Base - Abstract base class for LLM providers.
"""
import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional, List, Dict, Any
from contextvars import ContextVar

from loguru import logger


# Context variables for passing metadata to call records
_current_task_type: ContextVar[Optional[str]] = ContextVar('task_type', default=None)
_current_run_id: ContextVar[Optional[str]] = ContextVar('run_id', default=None)


def set_llm_context(task_type: Optional[str] = None, run_id: Optional[str] = None):
    """Set context for LLM call records."""
    if task_type is not None:
        _current_task_type.set(task_type)
    if run_id is not None:
        _current_run_id.set(run_id)


def get_llm_context() -> Dict[str, Optional[str]]:
    """Get current LLM call record context."""
    return {
        "task_type": _current_task_type.get(),
        "run_id": _current_run_id.get()
    }


@dataclass
class LLMResponse:
    """Standard response from LLM."""
    content: str
    model: str
    usage: Dict[str, int]  # input_tokens, output_tokens
    stop_reason: Optional[str] = None
    latency_ms: Optional[int] = None

    @property
    def total_tokens(self) -> int:
        return self.usage.get("input_tokens", 0) + self.usage.get("output_tokens", 0)


@dataclass
class Message:
    """Chat message."""
    role: str  # "user", "assistant", "system"
    content: str


@dataclass
class LLMCallRecord:
    """Record of one completed LLM call, persisted by the caller."""
    id: str
    timestamp: datetime
    provider: str
    model: str
    system_prompt: Optional[str]
    user_prompt: str
    messages: List[Dict[str, str]]
    response: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    temperature: float
    max_tokens: int
    latency_ms: Optional[int]
    stop_reason: Optional[str]
    task_type: Optional[str]
    run_id: Optional[str]
    is_valid_json: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class LLMClient(ABC):
    """
    Abstract base class for LLM clients.

    All LLM providers implement chat(). Every completed call is kept as an
    LLMCallRecord in memory until the owner drains and persists it.
    Transport errors propagate unchanged; retrying is the caller's job.
    """

    provider: str = "unknown"

    def __init__(self, api_key: str, model: str, enable_logging: bool = True):
        self.api_key = api_key
        self.model = model
        self.enable_logging = enable_logging
        self._pending_logs: List[LLMCallRecord] = []

    def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate a response from a single prompt.

        Args:
            prompt: The user prompt
            system: Optional system prompt
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0.0 = deterministic)
            model: Per-call model override

        Returns:
            LLMResponse with generated content
        """
        messages = [Message(role="user", content=prompt)]
        return self.chat(messages, system=system, max_tokens=max_tokens,
                         temperature=temperature, model=model)

    @abstractmethod
    def chat(
        self,
        messages: List[Message],
        system: Optional[str] = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """
        Generate a response from a conversation.

        Args:
            messages: List of conversation messages
            system: Optional system prompt
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature
            model: Per-call model override

        Returns:
            LLMResponse with generated content
        """
        pass

    def _build_messages_for_log(
        self,
        messages: List[Message],
        system: Optional[str] = None
    ) -> List[Dict[str, str]]:
        """Build messages list in chat format for the record."""
        result = []
        if system:
            result.append({"role": "system", "content": system})
        for msg in messages:
            result.append({"role": msg.role, "content": msg.content})
        return result

    def _check_valid_json(self, content: str) -> bool:
        """Check if response is valid JSON."""
        try:
            json.loads(content)
            return True
        except (json.JSONDecodeError, TypeError):
            return False

    def _create_call_record(
        self,
        messages: List[Message],
        system: Optional[str],
        response: LLMResponse,
        max_tokens: int,
        temperature: float,
    ) -> LLMCallRecord:
        """Create a call record."""
        context = get_llm_context()
        now = datetime.now()

        user_prompt = ""
        for msg in reversed(messages):
            if msg.role == "user":
                user_prompt = msg.content
                break

        return LLMCallRecord(
            id=f"llm_{now.strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}",
            timestamp=now,
            provider=self.provider,
            model=response.model,
            system_prompt=system,
            user_prompt=user_prompt,
            messages=self._build_messages_for_log(messages, system),
            response=response.content,
            input_tokens=response.usage.get("input_tokens", 0),
            output_tokens=response.usage.get("output_tokens", 0),
            total_tokens=response.total_tokens,
            temperature=temperature,
            max_tokens=max_tokens,
            latency_ms=response.latency_ms,
            stop_reason=response.stop_reason,
            task_type=context.get("task_type"),
            run_id=context.get("run_id"),
            is_valid_json=self._check_valid_json(response.content),
        )

    def log_call(
        self,
        messages: List[Message],
        system: Optional[str],
        response: LLMResponse,
        max_tokens: int,
        temperature: float,
    ) -> None:
        """Queue a record of a completed call."""
        if not self.enable_logging:
            return

        record = self._create_call_record(
            messages=messages,
            system=system,
            response=response,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        self._pending_logs.append(record)
        logger.debug(f"LLM call logged: {record.id} ({record.task_type or 'unknown'})")

    def drain_pending_logs(self) -> List[LLMCallRecord]:
        """Return pending call records and forget them."""
        records = self._pending_logs
        self._pending_logs = []
        return records

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model})"
