"""
Research pipeline
=================
Runs a query end to end: submit a Firecrawl deep research job, wait for it to
finish, then extract structured insights from its final analysis with OpenAI
function calling.

Highlights
~~~~~~~~~~
* One ``ResearchReport`` per query, with the insights validated against
  :class:`~deep_research_tool.llm.tools.ResearchInsights`.
* ``batch`` fans several queries out through the bounded-concurrency runner.
* ``run_research`` is a blocking wrapper for scripts.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from deep_research_tool.config import Settings, get_settings
from deep_research_tool.firecrawl.client import FirecrawlClient
from deep_research_tool.firecrawl.types import ResearchSource, ResearchStatus
from deep_research_tool.llm.client import OpenAIClient
from deep_research_tool.llm.tools import ResearchInsights, research_insights_extractor
from deep_research_tool.llm.types import StructuredAnalysisOptions, TokenUsage
from deep_research_tool.parallel import BatchRunner, ParallelExecutionOptions

logger = logging.getLogger(__name__)

INSIGHTS_PROMPT = (
    "You are a research analyst. Extract the key insights, areas of controversy and "
    "source metadata from the research below. Base every insight on the provided material."
)


# -----------------------------
# Data classes
# -----------------------------

@dataclass
class ResearchReport:
    query: str
    research_id: str
    final_analysis: str
    sources: List[ResearchSource] = field(default_factory=list)
    insights: Optional[Dict[str, Any]] = None
    validation_errors: Optional[List[Dict[str, Any]]] = None
    usage: TokenUsage = field(default_factory=TokenUsage)

    @property
    def is_valid(self) -> bool:
        return self.insights is not None and not self.validation_errors

    def to_json(self) -> str:
        """Serialize report to JSON string."""
        return json.dumps(asdict(self), ensure_ascii=False, default=str)


def build_insights_prompt(query: str, final_analysis: str, sources: Sequence[ResearchSource]) -> str:
    """Format a finished research job as the user message for insight extraction."""
    lines = [f"Research query: {query}", "", "Final analysis:", final_analysis or "(none)"]
    if sources:
        lines += ["", "Sources:"]
        for source in sources:
            title = source.title or source.url
            lines.append(f"- {title} ({source.url})")
    return "\n".join(lines)


# -----------------------------
# Pipeline
# -----------------------------

class ResearchPipeline:
    """Deep research followed by structured insight extraction."""

    def __init__(self, firecrawl: FirecrawlClient, openai: OpenAIClient):
        self.firecrawl = firecrawl
        self.openai = openai

    async def research(
        self,
        query: str,
        max_depth: Optional[int] = None,
        time_limit: Optional[int] = None,
        max_urls: Optional[int] = None,
        poll_interval_ms: int = 10_000,
        max_attempts: int = 30,
    ) -> ResearchReport:
        """
        Research ``query`` and extract structured insights from the result.

        Args:
            query: Research question.
            max_depth: Crawl depth passed to Firecrawl.
            time_limit: Time budget in seconds passed to Firecrawl.
            max_urls: URL budget passed to Firecrawl.
            poll_interval_ms: Delay between status checks.
            max_attempts: Status checks before giving up.

        Returns:
            ResearchReport with the final analysis, its sources and the extracted insights.

        Raises:
            FirecrawlError: if submission or the research job fails.
            TaskTimeoutError: if the job does not complete in time.
            OpenAIError: if insight extraction fails.
        """
        job = await self.firecrawl.deep_research(
            query, max_depth=max_depth, time_limit=time_limit, max_urls=max_urls
        )
        logger.info(f"Research {job.id} submitted (status: {job.status.value})")

        if job.status is not ResearchStatus.COMPLETED:
            job = await self.firecrawl.wait_for_research(
                job.id, poll_interval_ms=poll_interval_ms, max_attempts=max_attempts
            )

        analysis = await self.openai.structured_analysis(StructuredAnalysisOptions(
            content=build_insights_prompt(query, job.data.final_analysis, job.data.sources),
            system_prompt=INSIGHTS_PROMPT,
            functions=[research_insights_extractor],
            function_name=research_insights_extractor.name,
            output_model=ResearchInsights,
        ))

        insights = analysis.result
        if isinstance(insights, ResearchInsights):
            insights = insights.model_dump(exclude_none=True)

        logger.info(f"Research {job.id} analysed ({len(job.data.sources)} sources)")
        return ResearchReport(
            query=query,
            research_id=job.id,
            final_analysis=job.data.final_analysis,
            sources=list(job.data.sources),
            insights=insights,
            validation_errors=analysis.validation_errors,
            usage=analysis.usage,
        )

    async def batch(
        self,
        queries: Sequence[str],
        max_concurrent: int = 3,
        abort_on_error: bool = False,
        timeout_ms: Optional[int] = None,
        show_progress: bool = False,
        **research_options: Any,
    ) -> List[ResearchReport]:
        """
        Research several queries with bounded concurrency.

        Returns:
            Reports of the queries that succeeded, in query order.
        """
        logger.info(f"Researching {len(queries)} queries (max concurrency: {max_concurrent})")

        def _task(query: str):
            return lambda: self.research(query, **research_options)

        runner = BatchRunner(
            ParallelExecutionOptions(max_concurrent, abort_on_error, timeout_ms),
            show_progress=show_progress,
        )
        batch = await runner.run([_task(q) for q in queries])
        return batch.results


async def async_run_research(query: str, settings: Optional[Settings] = None, **research_options: Any) -> ResearchReport:
    """Build both clients from ``settings`` and research a single query."""
    settings = settings or get_settings()
    openai_client = OpenAIClient(settings=settings)
    async with FirecrawlClient(settings=settings) as firecrawl:
        return await ResearchPipeline(firecrawl, openai_client).research(query, **research_options)


def run_research(query: str, settings: Optional[Settings] = None, **research_options: Any):
    """
    Blocking function to research a query.

    Args:
        query: Research question.
        settings: Runtime settings. Loaded from the environment if None.
        **research_options: Forwarded to ``ResearchPipeline.research``.

    Returns:
        ResearchReport, or a coroutine when called from a running event loop.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(async_run_research(query, settings, **research_options))
    # Already inside an event loop: hand the coroutine back to the caller
    return async_run_research(query, settings, **research_options)
