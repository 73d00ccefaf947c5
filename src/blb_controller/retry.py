"""Bounded retry policies for polling the eventually consistent cloud API.

Every wait in a reconciliation pass is expressed as a RetryPolicy and
sleeps through an injected coroutine, so tests can substitute a fake
clock for real delays.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

Sleep = Callable[[float], Awaitable[None]]

# Upper bounds keep a misconfigured policy from stalling a pass for hours
MAX_RETRY_ATTEMPTS = 100
MAX_RETRY_DELAY_SECONDS = 300


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry budget.

    Attributes:
        max_attempts: Number of attempts (polls, retries) allowed.
        delay_seconds: Delay applied before each attempt that waits.
    """

    max_attempts: int
    delay_seconds: float

    def __post_init__(self) -> None:
        if not 1 <= self.max_attempts <= MAX_RETRY_ATTEMPTS:
            raise ValueError(
                f"max_attempts must be between 1 and {MAX_RETRY_ATTEMPTS}: {self.max_attempts}"
            )
        if not 0 <= self.delay_seconds <= MAX_RETRY_DELAY_SECONDS:
            raise ValueError(
                f"delay_seconds must be between 0 and {MAX_RETRY_DELAY_SECONDS}: "
                f"{self.delay_seconds}"
            )

    async def pause(self, sleep: Sleep = asyncio.sleep) -> None:
        """Wait for the configured delay using the given sleep coroutine."""
        await sleep(self.delay_seconds)
