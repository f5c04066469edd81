"""
Rate-limited request queue
==========================
Paces outbound API calls so that no more than ``max_requests_per_minute`` are
admitted in any trailing 60 second window, and transparently retries calls
that the upstream service rejected with a rate-limit error.

The queue paces *admission* only. An admitted request is started and the queue
moves on to the next one without waiting for it to finish; limiting how many
requests are in flight at once is the job of :mod:`deep_research_tool.parallel`.
"""
from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Optional, Set, TypeVar

from deep_research_tool.clock import Clock, SystemClock
from deep_research_tool.errors import ConfigurationError, is_rate_limit_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

WINDOW_MS = 60_000
# Added to the computed wait so the oldest timestamp has surely left the window.
ADMISSION_BUFFER_MS = 100

DEFAULT_MAX_REQUESTS_PER_MINUTE = 60
DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_DELAY_MS = 1000


# -----------------------------
# Options
# -----------------------------

@dataclass
class RateLimitOptions:
    """Rate limiting settings. ``None`` fields fall back to the defaults."""
    max_requests_per_minute: Optional[int] = None
    retry_count: Optional[int] = None
    retry_delay_ms: Optional[int] = None

    def resolved(self) -> "RateLimitOptions":
        """Return a copy with defaults applied, raising ConfigurationError on bad values."""
        resolved = RateLimitOptions(
            max_requests_per_minute=_default(self.max_requests_per_minute, DEFAULT_MAX_REQUESTS_PER_MINUTE),
            retry_count=_default(self.retry_count, DEFAULT_RETRY_COUNT),
            retry_delay_ms=_default(self.retry_delay_ms, DEFAULT_RETRY_DELAY_MS),
        )

        if not _is_int(resolved.max_requests_per_minute) or resolved.max_requests_per_minute <= 0:
            raise ConfigurationError(
                f"max_requests_per_minute must be a positive integer, got {self.max_requests_per_minute!r}"
            )
        if not _is_int(resolved.retry_count) or resolved.retry_count < 0:
            raise ConfigurationError(
                f"retry_count must be a non-negative integer, got {self.retry_count!r}"
            )
        if not _is_int(resolved.retry_delay_ms) or resolved.retry_delay_ms <= 0:
            raise ConfigurationError(
                f"retry_delay_ms must be a positive integer, got {self.retry_delay_ms!r}"
            )
        return resolved


def _default(value, fallback):
    return fallback if value is None else value


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class _PendingRequest:
    request_fn: Callable[[], Awaitable[Any]]
    future: "asyncio.Future[Any]"


# -----------------------------
# Queue
# -----------------------------

class RequestQueue:
    """
    FIFO queue that admits requests under a per-minute ceiling.

    Each queue owns its own rate window, so create one queue per external
    service. The queue must be used from a single event loop.
    """

    def __init__(self, options: Optional[RateLimitOptions] = None, clock: Optional[Clock] = None):
        """
        Initialize the queue.

        Args:
            options: Rate limiting settings. Defaults to 60 req/min, 3 retries, 1000 ms.
            clock: Time source. Defaults to SystemClock.
        """
        self.options = (options or RateLimitOptions()).resolved()
        self.clock: Clock = clock or SystemClock()
        self._queue: Deque[_PendingRequest] = deque()
        self._timestamps: Deque[float] = deque()
        self._processing = False
        self._in_flight: Set["asyncio.Task[None]"] = set()
        self._drain_task: Optional["asyncio.Task[None]"] = None

    def configure(
        self,
        max_requests_per_minute: Optional[int] = None,
        retry_count: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
    ) -> None:
        """Replace the queue's settings. Unspecified values fall back to the defaults."""
        self.options = RateLimitOptions(
            max_requests_per_minute=max_requests_per_minute,
            retry_count=retry_count,
            retry_delay_ms=retry_delay_ms,
        ).resolved()

    @property
    def pending(self) -> int:
        """Number of requests waiting for admission."""
        return len(self._queue)

    async def enqueue(self, request_fn: Callable[[], Awaitable[T]]) -> T:
        """
        Queue ``request_fn`` and wait for its result.

        Args:
            request_fn: Zero-argument callable returning an awaitable.

        Returns:
            Whatever the awaitable returns, after any rate-limit retries.

        Raises:
            The request's own error, once retries (if applicable) are exhausted.
        """
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        self._queue.append(_PendingRequest(request_fn, future))

        if not self._processing:
            self._processing = True
            self._drain_task = loop.create_task(self._process_queue())

        return await future

    def _purge_window(self, now: float) -> None:
        cutoff = now - WINDOW_MS
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    async def _process_queue(self) -> None:
        """Admit queued requests until the queue is empty."""
        try:
            while self._queue:
                now = self.clock.now()
                self._purge_window(now)

                if len(self._timestamps) >= self.options.max_requests_per_minute:
                    wait_ms = WINDOW_MS - (now - self._timestamps[0])
                    logger.debug(f"Rate limit reached, waiting {wait_ms:.0f}ms before next request")
                    await self.clock.sleep(wait_ms + ADMISSION_BUFFER_MS)
                    continue

                pending = self._queue.popleft()
                if pending.future.done():
                    # Caller went away while waiting; nothing to run.
                    continue

                self._timestamps.append(now)
                task = asyncio.get_running_loop().create_task(self._run(pending))
                self._in_flight.add(task)
                task.add_done_callback(self._in_flight.discard)

                # Let the admitted request start before the next admission attempt.
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            while self._queue:
                self._queue.popleft().future.cancel()
            raise
        finally:
            self._processing = False

    async def _run(self, pending: _PendingRequest) -> None:
        try:
            result = await self._execute_with_retry(pending.request_fn)
        except asyncio.CancelledError:
            # Settle the caller before the cancellation propagates.
            pending.future.cancel()
            raise
        except Exception as e:
            if not pending.future.done():
                pending.future.set_exception(e)
        else:
            if not pending.future.done():
                pending.future.set_result(result)

    async def _execute_with_retry(self, request_fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``request_fn``, retrying rate-limit failures with linear backoff."""
        attempt = 1
        while True:
            try:
                return await request_fn()
            except Exception as e:
                if not is_rate_limit_error(e) or attempt > self.options.retry_count:
                    raise

                delay = self.options.retry_delay_ms * attempt
                logger.debug(
                    f"Rate limited, retrying in {delay}ms (attempt {attempt}/{self.options.retry_count})"
                )
                await self.clock.sleep(delay)
                attempt += 1


class RateLimitedRequester:
    """Thin handle around a RequestQueue, used by the API clients."""

    def __init__(self, queue: RequestQueue):
        self.queue = queue

    async def request(self, request_fn: Callable[[], Awaitable[T]]) -> T:
        """Make a rate-limited request."""
        return await self.queue.enqueue(request_fn)


def create_rate_limited_requester(
    options: Optional[RateLimitOptions] = None,
    clock: Optional[Clock] = None,
) -> RateLimitedRequester:
    """
    Create a rate-limited request handler backed by a fresh RequestQueue.

    Args:
        options: Rate limiting settings.
        clock: Time source, mainly for tests.

    Returns:
        RateLimitedRequester owning its own queue.
    """
    return RateLimitedRequester(RequestQueue(options, clock))
