"""
Firecrawl deep research client
==============================
Type-safe asynchronous interface to the Firecrawl deep research API.

Highlights
~~~~~~~~~~
* **Rate limiting** - every HTTP call goes through the client's own
  :class:`~deep_research_tool.rate_limit.RequestQueue`; 429 responses are
  retried with linear backoff.
* **Parallel execution** - batches of research queries are fanned out through
  :class:`~deep_research_tool.parallel.BatchRunner`.
* **Typed errors** - non-2xx responses become :class:`FirecrawlError` carrying
  the HTTP status, tagged as rate-limit or generic upstream failures.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import aiohttp

from deep_research_tool.clock import Clock, SystemClock
from deep_research_tool.config import DEFAULT_FIRECRAWL_BASE_URL, Settings
from deep_research_tool.errors import FirecrawlError, TaskTimeoutError, wrap_api_error
from deep_research_tool.firecrawl.types import DeepResearchResponse, ResearchStatus
from deep_research_tool.parallel import BatchRunner, ParallelExecutionOptions
from deep_research_tool.rate_limit import RateLimitOptions, RequestQueue

logger = logging.getLogger(__name__)

USER_AGENT = "deep-research-tool/0.1.0"
DEEP_RESEARCH_PATH = "/v1/deep-research"

DEFAULT_MAX_DEPTH = 3
DEFAULT_TIME_LIMIT = 120
DEFAULT_MAX_URLS = 20

DEFAULT_PARALLEL_OPTIONS = ParallelExecutionOptions(max_concurrent=5, abort_on_error=False, timeout_ms=30_000)


class FirecrawlClient:
    """Client for the Firecrawl deep research endpoints."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        rate_limiting: Optional[RateLimitOptions] = None,
        parallel_options: Optional[ParallelExecutionOptions] = None,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Clock] = None,
        request_timeout: int = 60,
    ):
        """
        Initialize the client.

        Args:
            api_key: Firecrawl API key. Falls back to ``settings.firecrawl_api_key``.
            base_url: API root. Falls back to settings, then the public endpoint.
            rate_limiting: Options for the client's request queue.
            parallel_options: Defaults for ``execute_parallel`` and ``batch_research``.
            settings: Research defaults (depth, URL budget, time limit).
            session: Externally owned aiohttp session. One is created lazily otherwise.
            clock: Time source for rate limiting and polling.
            request_timeout: Per-request HTTP timeout in seconds.
        """
        self.api_key = api_key or (settings.firecrawl_api_key if settings else None)
        if not self.api_key:
            raise FirecrawlError("API key is required", 401)

        self.base_url = (base_url or (settings.firecrawl_base_url if settings else None)
                         or DEFAULT_FIRECRAWL_BASE_URL).rstrip("/")
        self.max_depth = settings.max_depth if settings else DEFAULT_MAX_DEPTH
        self.time_limit = settings.time_limit if settings else DEFAULT_TIME_LIMIT
        self.max_urls = settings.max_urls if settings else DEFAULT_MAX_URLS

        self.clock: Clock = clock or SystemClock()
        self.rate_limiter = RequestQueue(rate_limiting, self.clock)
        self.parallel_options = (parallel_options or DEFAULT_PARALLEL_OPTIONS).validate()
        self.timeout = aiohttp.ClientTimeout(total=request_timeout)

        self._session = session
        self._owns_session = session is None

    # -----------------------------
    # Session management
    # -----------------------------

    async def __aenter__(self) -> "FirecrawlClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    # -----------------------------
    # HTTP layer
    # -----------------------------

    async def _make_request(self, endpoint: str, method: str = "GET", body: Optional[Dict[str, Any]] = None) -> Any:
        """Send an authenticated request through the rate limiter and return the decoded JSON body."""
        return await self.rate_limiter.enqueue(lambda: self._send(endpoint, method, body))

    async def _send(self, endpoint: str, method: str, body: Optional[Dict[str, Any]]) -> Any:
        url = f"{self.base_url}{endpoint}"
        logger.debug(f"Making {method} request to {endpoint}")

        try:
            session = self._get_session()
            async with session.request(method, url, headers=self.headers, json=body) as resp:
                if resp.status >= 400:
                    raise FirecrawlError(_status_message(resp.status, await resp.text()), resp.status)
                return await resp.json(content_type=None)
        except FirecrawlError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise wrap_api_error(e, "Firecrawl") from e

    # -----------------------------
    # Deep research
    # -----------------------------

    async def deep_research(
        self,
        query: str,
        max_depth: Optional[int] = None,
        time_limit: Optional[int] = None,
        max_urls: Optional[int] = None,
        custom_instructions: Optional[str] = None,
        focus_topics: Optional[Sequence[str]] = None,
    ) -> DeepResearchResponse:
        """
        Submit a deep research job.

        Args:
            query: Free-text research question.
            max_depth: Maximum crawl depth.
            time_limit: Time budget in seconds.
            max_urls: Maximum number of URLs to visit.
            custom_instructions: Extra guidance for the research agent.
            focus_topics: Topics to prioritise.

        Returns:
            The job as accepted by Firecrawl (usually ``pending``).
        """
        logger.info(f"Starting deep research for query: {query}")

        body: Dict[str, Any] = {
            "query": query,
            "maxDepth": max_depth or self.max_depth,
            "timeLimit": time_limit or self.time_limit,
            "maxUrls": max_urls or self.max_urls,
        }
        if custom_instructions:
            body["customInstructions"] = custom_instructions
        if focus_topics:
            body["focusTopics"] = list(focus_topics)

        payload = await self._make_request(DEEP_RESEARCH_PATH, "POST", body)
        return DeepResearchResponse.from_dict(payload)

    async def check_research_status(self, job_id: str) -> DeepResearchResponse:
        """Fetch the current state of a research job."""
        logger.debug(f"Checking status of research: {job_id}")
        payload = await self._make_request(f"{DEEP_RESEARCH_PATH}/{job_id}")
        return DeepResearchResponse.from_dict(payload, job_id=job_id)

    async def wait_for_research(
        self,
        job_id: str,
        poll_interval_ms: int = 10_000,
        max_attempts: int = 30,
    ) -> DeepResearchResponse:
        """
        Poll a research job until it completes.

        Args:
            job_id: Id returned by ``deep_research``.
            poll_interval_ms: Delay between status checks.
            max_attempts: Number of status checks before giving up.

        Returns:
            The completed job.

        Raises:
            FirecrawlError: if the job failed.
            TaskTimeoutError: if the job is still running after ``max_attempts`` checks.
        """
        for attempt in range(1, max_attempts + 1):
            response = await self.check_research_status(job_id)

            if response.status is ResearchStatus.COMPLETED:
                return response
            if response.status is ResearchStatus.FAILED:
                raise FirecrawlError(f"Research {job_id} failed: {response.error or 'unknown error'}")

            logger.debug(
                f"Waiting for research {job_id} to complete (attempt {attempt}/{max_attempts}, "
                f"status: {response.status.value})"
            )
            if attempt < max_attempts:
                await self.clock.sleep(poll_interval_ms)

        raise TaskTimeoutError(
            poll_interval_ms * max_attempts,
            f"Research {job_id} did not complete after {max_attempts} status checks",
        )

    # -----------------------------
    # Parallel execution
    # -----------------------------

    async def execute_parallel(
        self,
        tasks: Sequence[Callable[[], Awaitable[Any]]],
        options: Optional[ParallelExecutionOptions] = None,
    ) -> List[Any]:
        """Run tasks with the client's default concurrency, failure policy and timeout."""
        options = options or self.parallel_options
        batch = await BatchRunner(options, clock=self.clock).run(tasks)
        return batch.results

    async def batch_research(
        self,
        queries: Sequence[str],
        max_concurrent: Optional[int] = None,
        abort_on_error: Optional[bool] = None,
        timeout_ms: Optional[int] = None,
        **research_options: Any,
    ) -> List[DeepResearchResponse]:
        """
        Submit several research queries in parallel.

        Args:
            queries: Research questions.
            max_concurrent: Group size for the batch runner.
            abort_on_error: Raise on the first failed submission.
            timeout_ms: Per-submission timeout.
            **research_options: Forwarded to ``deep_research``.

        Returns:
            Responses of the submissions that succeeded, in query order.
        """
        logger.info(f"Starting batch research for {len(queries)} queries")

        def _task(query: str) -> Callable[[], Awaitable[DeepResearchResponse]]:
            return lambda: self.deep_research(query, **research_options)

        options = ParallelExecutionOptions(
            max_concurrent=self.parallel_options.max_concurrent if max_concurrent is None else max_concurrent,
            abort_on_error=self.parallel_options.abort_on_error if abort_on_error is None else abort_on_error,
            timeout_ms=self.parallel_options.timeout_ms if timeout_ms is None else timeout_ms,
        )
        return await self.execute_parallel([_task(q) for q in queries], options)


def _status_message(status: int, body: str) -> str:
    if status == 429:
        return "Rate limit exceeded"
    if status == 401:
        return "Invalid API key"
    if status >= 500:
        return "Firecrawl server error"
    return f"Request failed with status {status}: {body}"


def create_firecrawl_client(settings: Optional[Settings] = None, **kwargs: Any) -> FirecrawlClient:
    """Factory returning a FirecrawlClient configured from ``settings``."""
    return FirecrawlClient(settings=settings, **kwargs)
