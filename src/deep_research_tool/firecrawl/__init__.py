"""
Firecrawl deep research integration: client, response types and the
rate-limited / parallel execution helpers it is built on.
"""
from deep_research_tool.firecrawl.client import FirecrawlClient, create_firecrawl_client
from deep_research_tool.firecrawl.types import (
    DeepResearchResponse,
    ResearchActivity,
    ResearchData,
    ResearchSource,
    ResearchStatus,
)

__all__ = [
    "FirecrawlClient",
    "create_firecrawl_client",
    "DeepResearchResponse",
    "ResearchActivity",
    "ResearchData",
    "ResearchSource",
    "ResearchStatus",
]
