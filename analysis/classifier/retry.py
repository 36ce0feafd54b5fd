"""
Retry policy for the classification call.

Linear backoff without jitter: the wait before attempt n+1 is n x base_delay.
Swap delay() or sleep to change the schedule.
"""
import time
from dataclasses import dataclass, field
from typing import Callable

from config import settings


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return attempt * self.base_delay

    def wait(self, attempt: int) -> None:
        self.sleep(self.delay(attempt))

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.AI_MAX_RETRY_COUNT,
            base_delay=settings.AI_RETRY_BASE_DELAY_SECONDS,
        )
