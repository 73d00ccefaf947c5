"""Fake clock for retry loops."""

from __future__ import annotations

import asyncio


class FakeClock:
    """Records requested sleeps and advances virtual time instantly.

    Pass `clock.sleep` wherever a Sleep coroutine is expected.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # Let other tasks run, like a real sleep would
        await asyncio.sleep(0)

    @property
    def sleep_count(self) -> int:
        return len(self.sleeps)


async def hang_forever(_seconds: float) -> None:
    """A sleep that never returns, for deadline tests."""
    await asyncio.Event().wait()
