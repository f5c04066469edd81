"""
Bounded-concurrency batch runner
================================
Runs a list of independent async tasks in consecutive groups of at most
``max_concurrent`` tasks. Every task in a group is started together and the
runner waits for the whole group to settle before starting the next one.

Failure policy
~~~~~~~~~~~~~~
* ``abort_on_error=True`` - the first failure (timeouts included) is raised
  straight away; the rest of the batch is abandoned.
* ``abort_on_error=False`` - failures are collected in ``BatchResult.errors``
  and the surviving results are returned in input order.

Timeouts are measured with the runner's :class:`~deep_research_tool.clock.Clock`
and do not cancel the underlying work. A timed-out task keeps running in the
background and whatever it eventually produces is discarded.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from tqdm import tqdm

from deep_research_tool.clock import Clock, SystemClock
from deep_research_tool.errors import ConfigurationError, TaskTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Task = Callable[[], Awaitable[T]]


# -----------------------------
# Data classes
# -----------------------------

@dataclass
class ParallelExecutionOptions:
    max_concurrent: int = 5
    abort_on_error: bool = False
    timeout_ms: Optional[int] = None

    def validate(self) -> "ParallelExecutionOptions":
        if isinstance(self.max_concurrent, bool) or not isinstance(self.max_concurrent, int) \
                or self.max_concurrent <= 0:
            raise ConfigurationError(f"max_concurrent must be a positive integer, got {self.max_concurrent!r}")
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ConfigurationError(f"timeout_ms must be positive when set, got {self.timeout_ms!r}")
        return self


@dataclass
class BatchResult(Generic[T]):
    """Successful results in input order plus the errors of the failed tasks."""
    results: List[T] = field(default_factory=list)
    errors: List[BaseException] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def first_error(self) -> Optional[BaseException]:
        return self.errors[0] if self.errors else None


# -----------------------------
# Runner
# -----------------------------

def _error_of(future: "asyncio.Future[Any]") -> Optional[BaseException]:
    if future.cancelled():
        return asyncio.CancelledError()
    return future.exception()


def _discard_outcome(future: "asyncio.Future[Any]") -> None:
    # Retrieve the exception of abandoned work so the loop does not log it.
    if not future.cancelled():
        future.exception()


class BatchRunner:
    """Executes tasks in groups with a concurrency cap and per-task timeout."""

    def __init__(
        self,
        options: Optional[ParallelExecutionOptions] = None,
        show_progress: bool = False,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize the runner.

        Args:
            options: Default options used when ``run`` is called without overrides.
            show_progress: Display a tqdm progress bar over settled tasks.
            clock: Time source for per-task timeouts.
        """
        self.options = (options or ParallelExecutionOptions()).validate()
        self.show_progress = show_progress
        self.clock: Clock = clock or SystemClock()

    async def run(
        self,
        tasks: Sequence[Task],
        max_concurrent: Optional[int] = None,
        abort_on_error: Optional[bool] = None,
        timeout_ms: Optional[int] = None,
    ) -> BatchResult:
        """
        Execute ``tasks`` group by group.

        Args:
            tasks: Zero-argument callables returning awaitables.
            max_concurrent: Group size. Defaults to the runner's options.
            abort_on_error: Raise on the first failure instead of collecting it.
            timeout_ms: Per-task timeout. ``None`` uses the runner's default.

        Returns:
            BatchResult with the successful results in input order and the collected errors.

        Raises:
            The first task error (or TaskTimeoutError) when ``abort_on_error`` is set.
        """
        options = ParallelExecutionOptions(
            max_concurrent=self.options.max_concurrent if max_concurrent is None else max_concurrent,
            abort_on_error=self.options.abort_on_error if abort_on_error is None else abort_on_error,
            timeout_ms=self.options.timeout_ms if timeout_ms is None else timeout_ms,
        ).validate()

        batch: BatchResult = BatchResult()
        if not tasks:
            return batch

        logger.debug(
            f"Executing {len(tasks)} tasks in parallel (max concurrency: {options.max_concurrent})"
        )

        with tqdm(total=len(tasks), disable=not self.show_progress, desc="tasks") as progress:
            for start in range(0, len(tasks), options.max_concurrent):
                group = tasks[start:start + options.max_concurrent]
                for error, result in await self._run_group(group, options, progress):
                    if error is not None:
                        batch.errors.append(error)
                    else:
                        batch.results.append(result)

        if batch.errors:
            logger.warning(
                f"{batch.error_count} errors occurred during parallel execution "
                f"(first error: {batch.first_error})"
            )

        return batch

    async def _run_group(
        self,
        group: Sequence[Task],
        options: ParallelExecutionOptions,
        progress: tqdm,
    ) -> List[Tuple[Optional[BaseException], Any]]:
        """Start every task in ``group`` and return one (error, result) pair per task, in order."""
        loop = asyncio.get_running_loop()
        futures = [loop.create_task(self._run_one(task, options.timeout_ms)) for task in group]
        for fut in futures:
            fut.add_done_callback(lambda _f: progress.update(1))

        if options.abort_on_error:
            pending = set(futures)
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_EXCEPTION)
                failed = next((f for f in futures if f in done and _error_of(f) is not None), None)
                if failed is not None:
                    for fut in done:
                        if fut is not failed:
                            _discard_outcome(fut)
                    for fut in pending:
                        fut.add_done_callback(_discard_outcome)
                    raise _error_of(failed)
            return [(None, fut.result()) for fut in futures]

        await asyncio.wait(futures)
        outcomes = []
        for fut in futures:
            error = _error_of(fut)
            outcomes.append((error, None if error is not None else fut.result()))
        return outcomes

    async def _run_one(self, task: Task, timeout_ms: Optional[int]) -> Any:
        """Await ``task`` racing it against ``timeout_ms`` without cancelling it on expiry."""
        work = asyncio.ensure_future(task())
        if timeout_ms is None:
            return await work

        timer = asyncio.ensure_future(self.clock.sleep(timeout_ms))
        try:
            done, _ = await asyncio.wait({work, timer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            # Only the timer is ever cancelled; the work keeps running.
            timer.cancel()

        if work not in done:
            work.add_done_callback(_discard_outcome)
            raise TaskTimeoutError(timeout_ms)
        return work.result()


async def execute_parallel(
    tasks: Sequence[Task],
    max_concurrent: int = 5,
    abort_on_error: bool = False,
    timeout_ms: Optional[int] = None,
) -> List[Any]:
    """
    Execute tasks in parallel with concurrency control and return only the successes.

    Args:
        tasks: Zero-argument callables returning awaitables.
        max_concurrent: Maximum number of tasks running at once.
        abort_on_error: Raise on the first failure instead of skipping it.
        timeout_ms: Optional per-task timeout in milliseconds.

    Returns:
        Results of the tasks that succeeded, in input order.
    """
    runner = BatchRunner(ParallelExecutionOptions(max_concurrent, abort_on_error, timeout_ms))
    batch = await runner.run(tasks)
    return batch.results
