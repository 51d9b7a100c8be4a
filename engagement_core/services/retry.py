"""
Backoff policy for optimistic transaction retries
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff with optional jitter

    Attempt n (1-based) that fails waits base_delay * multiplier**n before
    the next attempt; no wait follows the final attempt. With the defaults
    the waits are 2s then 4s.

    Attributes:
        max_attempts: Total attempts, including the first
        base_delay: Seconds multiplied by multiplier**n
        multiplier: Exponential growth factor
        jitter: Extra random wait as a fraction of the computed delay
        max_delay: Cap for a single wait (None = uncapped)
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    jitter: float = 0.0
    max_delay: Optional[float] = None
    rng: random.Random = field(default_factory=random.Random, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.jitter < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Wait after failed attempt number `attempt` (1-based)"""
        delay = self.base_delay * (self.multiplier**attempt)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        if self.jitter:
            delay += self.rng.uniform(0, self.jitter * delay)
        return delay

    def should_retry(self, attempt: int) -> bool:
        return attempt < self.max_attempts

    @classmethod
    def from_settings(cls, settings) -> "BackoffPolicy":
        """Build from CounterSettings"""
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.base_delay_seconds,
            multiplier=settings.backoff_multiplier,
            jitter=settings.jitter,
            max_delay=settings.max_delay_seconds,
        )

    @classmethod
    def immediate(cls, max_attempts: int = 3) -> "BackoffPolicy":
        """No waiting between attempts (tests, sweeps)"""
        return cls(max_attempts=max_attempts, base_delay=0.0)


async def default_sleep(seconds: float) -> None:
    if seconds > 0:
        await asyncio.sleep(seconds)
