"""
Time source used by the request queue and the API clients.

All values are in milliseconds. Tests inject a fake clock so that rate-window
waits and retry backoff do not sleep on the wall clock.
"""
from __future__ import annotations

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Protocol for time sources to allow dependency injection and easier testing."""

    def now(self) -> float:
        """Current time in milliseconds."""
        ...

    async def sleep(self, ms: float) -> None:
        """Suspend the caller for ``ms`` milliseconds."""
        ...


class SystemClock:
    """Clock backed by the monotonic timer and ``asyncio.sleep``."""

    def now(self) -> float:
        return time.monotonic() * 1000.0

    async def sleep(self, ms: float) -> None:
        await asyncio.sleep(max(ms, 0) / 1000.0)
