"""
Unit tests for the deep_research_tool.rate_limit module.
"""

import asyncio

import pytest

from deep_research_tool.errors import ConfigurationError, ErrorKind, FirecrawlError
from deep_research_tool.rate_limit import (
    ADMISSION_BUFFER_MS,
    WINDOW_MS,
    RateLimitOptions,
    RequestQueue,
    create_rate_limited_requester,
)

# -----------------------------
# Options
# -----------------------------

def test_options_defaults():
    options = RateLimitOptions().resolved()

    assert options.max_requests_per_minute == 60
    assert options.retry_count == 3
    assert options.retry_delay_ms == 1000


def test_zero_retries_is_allowed():
    assert RateLimitOptions(retry_count=0).resolved().retry_count == 0


@pytest.mark.parametrize("kwargs", [
    {"max_requests_per_minute": 0},
    {"max_requests_per_minute": -5},
    {"max_requests_per_minute": 1.5},
    {"retry_count": -1},
    {"retry_delay_ms": 0},
])
def test_invalid_options_raise_configuration_error(kwargs):
    with pytest.raises(ConfigurationError):
        RequestQueue(RateLimitOptions(**kwargs))


def test_configure_replaces_options():
    queue = RequestQueue()

    queue.configure(max_requests_per_minute=10)

    assert queue.options.max_requests_per_minute == 10
    assert queue.options.retry_count == 3

# -----------------------------
# Admission
# -----------------------------

@pytest.mark.asyncio
async def test_rate_ceiling_holds_over_sliding_window(fake_clock):
    """No 60 s window contains more admissions than the configured ceiling."""
    # Arrange
    queue = RequestQueue(RateLimitOptions(max_requests_per_minute=2), clock=fake_clock)
    started = []

    def request(i):
        async def _call():
            started.append((i, fake_clock.now()))
            return i
        return _call

    # Act
    results = await asyncio.gather(*(queue.enqueue(request(i)) for i in range(5)))

    # Assert
    assert results == [0, 1, 2, 3, 4]
    times = [t for _, t in started]
    for t in times:
        assert sum(1 for other in times if t <= other < t + WINDOW_MS) <= 2
    assert times == [0, 0, WINDOW_MS + ADMISSION_BUFFER_MS, WINDOW_MS + ADMISSION_BUFFER_MS,
                     2 * (WINDOW_MS + ADMISSION_BUFFER_MS)]


@pytest.mark.asyncio
async def test_requests_are_admitted_in_fifo_order(fake_clock):
    queue = RequestQueue(RateLimitOptions(max_requests_per_minute=3), clock=fake_clock)
    order = []

    def request(i):
        async def _call():
            order.append(i)
        return _call

    await asyncio.gather(*(queue.enqueue(request(i)) for i in range(7)))

    assert order == list(range(7))


@pytest.mark.asyncio
async def test_admission_does_not_wait_for_completion(fake_clock):
    """A slow admitted request does not hold back the next admission."""
    queue = RequestQueue(clock=fake_clock)
    release = asyncio.Event()
    events = []

    async def slow():
        events.append("slow started")
        await release.wait()
        events.append("slow finished")

    async def fast():
        events.append("fast started")
        release.set()

    await asyncio.gather(queue.enqueue(slow), queue.enqueue(fast))

    assert events == ["slow started", "fast started", "slow finished"]


@pytest.mark.asyncio
async def test_queue_drains_and_restarts(fake_clock):
    queue = RequestQueue(clock=fake_clock)

    async def ok():
        return "ok"

    assert await queue.enqueue(ok) == "ok"
    await asyncio.sleep(0)
    assert queue.pending == 0
    assert await queue.enqueue(ok) == "ok"


@pytest.mark.asyncio
async def test_failing_request_does_not_affect_its_sibling(fake_clock):
    queue = RequestQueue(clock=fake_clock)

    async def broken():
        raise FirecrawlError("Firecrawl server error", 500)

    async def ok():
        return "ok"

    outcomes = await asyncio.gather(queue.enqueue(broken), queue.enqueue(ok), return_exceptions=True)

    assert isinstance(outcomes[0], FirecrawlError)
    assert outcomes[1] == "ok"

# -----------------------------
# Retry
# -----------------------------

@pytest.mark.asyncio
async def test_rate_limit_errors_retry_then_give_up(fake_clock):
    """A request that keeps hitting 429 is attempted retry_count + 1 times."""
    # Arrange
    queue = RequestQueue(RateLimitOptions(retry_count=3, retry_delay_ms=1000), clock=fake_clock)
    calls = 0

    async def always_limited():
        nonlocal calls
        calls += 1
        raise FirecrawlError("Rate limit exceeded", 429)

    # Act
    with pytest.raises(FirecrawlError) as exc_info:
        await queue.enqueue(always_limited)

    # Assert
    assert calls == 4
    assert exc_info.value.kind is ErrorKind.RATE_LIMIT
    assert fake_clock.sleeps == [1000, 2000, 3000]


@pytest.mark.asyncio
async def test_rate_limit_retry_recovers(fake_clock):
    queue = RequestQueue(RateLimitOptions(retry_delay_ms=10), clock=fake_clock)
    attempts = []

    async def flaky():
        attempts.append(fake_clock.now())
        if len(attempts) < 3:
            raise FirecrawlError("Rate limit exceeded", 429)
        return "done"

    assert await queue.enqueue(flaky) == "done"
    assert len(attempts) == 3
    assert fake_clock.sleeps == [10, 20]


@pytest.mark.asyncio
async def test_other_errors_are_not_retried(fake_clock):
    queue = RequestQueue(clock=fake_clock)
    calls = 0

    async def broken():
        nonlocal calls
        calls += 1
        raise FirecrawlError("Firecrawl server error", 500)

    with pytest.raises(FirecrawlError):
        await queue.enqueue(broken)

    assert calls == 1
    assert fake_clock.sleeps == []


@pytest.mark.asyncio
async def test_zero_retry_count_makes_single_attempt(fake_clock):
    queue = RequestQueue(RateLimitOptions(retry_count=0), clock=fake_clock)
    calls = 0

    async def limited():
        nonlocal calls
        calls += 1
        raise FirecrawlError("Rate limit exceeded", 429)

    with pytest.raises(FirecrawlError):
        await queue.enqueue(limited)

    assert calls == 1


@pytest.mark.asyncio
async def test_create_rate_limited_requester_owns_fresh_queue(fake_clock):
    first = create_rate_limited_requester(clock=fake_clock)
    second = create_rate_limited_requester(clock=fake_clock)

    async def ok():
        return 42

    assert first.queue is not second.queue
    assert await first.request(ok) == 42

# -----------------------------
# Cancellation
# -----------------------------

class StalledClock:
    """Clock whose sleep never returns, holding the queue at the rate ceiling."""

    def now(self):
        return 0.0

    async def sleep(self, ms):
        await asyncio.Event().wait()


@pytest.mark.asyncio
async def test_request_raising_cancelled_error_settles_caller(fake_clock):
    queue = RequestQueue(clock=fake_clock)

    async def cancelled():
        raise asyncio.CancelledError()

    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(queue.enqueue(cancelled), 1)


@pytest.mark.asyncio
async def test_cancelled_in_flight_request_settles_caller(fake_clock):
    # Arrange
    queue = RequestQueue(clock=fake_clock)

    async def slow():
        await asyncio.Event().wait()

    caller = asyncio.ensure_future(queue.enqueue(slow))
    while not queue._in_flight:
        await asyncio.sleep(0)

    # Act
    for task in list(queue._in_flight):
        task.cancel()

    # Assert
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(caller, 1)


@pytest.mark.asyncio
async def test_cancelled_queue_settles_waiting_callers():
    # Arrange
    queue = RequestQueue(RateLimitOptions(max_requests_per_minute=1), clock=StalledClock())

    async def ok():
        return "ok"

    first = asyncio.ensure_future(queue.enqueue(ok))
    second = asyncio.ensure_future(queue.enqueue(ok))
    assert await asyncio.wait_for(first, 1) == "ok"

    # Act
    queue._drain_task.cancel()

    # Assert
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(second, 1)
    assert queue.pending == 0
