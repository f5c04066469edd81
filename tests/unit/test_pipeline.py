"""
Unit tests for the deep_research_tool.pipeline module.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from deep_research_tool.errors import FirecrawlError
from deep_research_tool.firecrawl.types import DeepResearchResponse
from deep_research_tool.llm.tools import ResearchInsights
from deep_research_tool.llm.types import StructuredAnalysisResult, TokenUsage
from deep_research_tool.pipeline import (
    ResearchPipeline,
    ResearchReport,
    build_insights_prompt,
    run_research,
)


def _job(status, final_analysis="", sources=None, job_id="job-1"):
    return DeepResearchResponse.from_dict({
        "id": job_id,
        "status": status,
        "data": {"finalAnalysis": final_analysis, "sources": sources or []},
    })


@pytest.fixture
def firecrawl():
    client = MagicMock()
    client.deep_research = AsyncMock(return_value=_job("pending"))
    client.wait_for_research = AsyncMock(return_value=_job(
        "completed",
        final_analysis="Prototype cells exceed 400 Wh/kg.",
        sources=[{"url": "https://example.com/batteries", "title": "Battery report"}],
    ))
    return client


@pytest.fixture
def llm(valid_insights):
    client = MagicMock()
    client.structured_analysis = AsyncMock(return_value=StructuredAnalysisResult(
        function_name="extract_research_insights",
        result=ResearchInsights.model_validate(valid_insights),
        usage=TokenUsage(100, 50, 150),
    ))
    return client

# -----------------------------
# Prompt
# -----------------------------

def test_build_insights_prompt_lists_sources():
    job = _job("completed", "Findings.", [{"url": "https://a.example"}, {"url": "https://b.example", "title": "B"}])

    prompt = build_insights_prompt("What changed?", job.data.final_analysis, job.data.sources)

    assert prompt.startswith("Research query: What changed?")
    assert "Findings." in prompt
    assert "- https://a.example (https://a.example)" in prompt
    assert "- B (https://b.example)" in prompt

# -----------------------------
# research
# -----------------------------

@pytest.mark.asyncio
async def test_research_submits_waits_and_analyses(firecrawl, llm):
    # Arrange
    pipeline = ResearchPipeline(firecrawl, llm)

    # Act
    report = await pipeline.research("solid-state batteries", max_depth=2, poll_interval_ms=1_000)

    # Assert
    firecrawl.deep_research.assert_awaited_once_with(
        "solid-state batteries", max_depth=2, time_limit=None, max_urls=None
    )
    firecrawl.wait_for_research.assert_awaited_once_with("job-1", poll_interval_ms=1_000, max_attempts=30)

    options = llm.structured_analysis.call_args.args[0]
    assert options.function_name == "extract_research_insights"
    assert options.output_model is ResearchInsights
    assert "Prototype cells exceed 400 Wh/kg." in options.content
    assert "https://example.com/batteries" in options.content

    assert isinstance(report, ResearchReport)
    assert report.research_id == "job-1"
    assert report.insights["title"] == "Solid-state batteries in 2024"
    assert report.is_valid
    assert report.usage.total_tokens == 150
    assert json.loads(report.to_json())["sources"][0]["title"] == "Battery report"


@pytest.mark.asyncio
async def test_research_skips_polling_when_already_completed(firecrawl, llm):
    firecrawl.deep_research.return_value = _job("completed", final_analysis="Done already.")

    report = await ResearchPipeline(firecrawl, llm).research("q")

    firecrawl.wait_for_research.assert_not_awaited()
    assert report.final_analysis == "Done already."


@pytest.mark.asyncio
async def test_research_reports_validation_errors(firecrawl, llm):
    llm.structured_analysis.return_value = StructuredAnalysisResult(
        function_name="extract_research_insights",
        result={"title": "partial"},
        validation_errors=[{"loc": ("summary",), "msg": "Field required"}],
    )

    report = await ResearchPipeline(firecrawl, llm).research("q")

    assert report.insights == {"title": "partial"}
    assert not report.is_valid

# -----------------------------
# batch
# -----------------------------

@pytest.mark.asyncio
async def test_batch_keeps_successful_reports(firecrawl, llm):
    async def submit(query, **kwargs):
        if query == "broken":
            raise FirecrawlError("Firecrawl server error", 500)
        return _job("pending", job_id=f"job-{query}")

    firecrawl.deep_research.side_effect = submit

    reports = await ResearchPipeline(firecrawl, llm).batch(["a", "broken", "c"], max_concurrent=2)

    assert [r.query for r in reports] == ["a", "c"]


@pytest.mark.asyncio
async def test_batch_abort_on_error(firecrawl, llm):
    firecrawl.deep_research.side_effect = FirecrawlError("Firecrawl server error", 500)

    with pytest.raises(FirecrawlError):
        await ResearchPipeline(firecrawl, llm).batch(["a", "b"], abort_on_error=True)

# -----------------------------
# Blocking wrapper
# -----------------------------

def test_run_research_outside_event_loop(settings):
    with patch("deep_research_tool.pipeline.async_run_research", new=AsyncMock(return_value="report")) as mock_run:
        assert run_research("q", settings) == "report"

    mock_run.assert_awaited_once_with("q", settings)


@pytest.mark.asyncio
async def test_run_research_inside_event_loop_returns_coroutine(settings):
    with patch("deep_research_tool.pipeline.async_run_research", new=AsyncMock(return_value="report")):
        result = run_research("q", settings)
        assert await result == "report"
