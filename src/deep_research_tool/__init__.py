"""
Deep research tool
==================
Firecrawl deep research and OpenAI analysis clients built on a rate-limited
request queue and a bounded-concurrency batch runner.
"""

from deep_research_tool.config import Settings, get_settings, load_dotenv_files
from deep_research_tool.errors import (
    ApiError,
    AppError,
    ConfigurationError,
    ErrorKind,
    FirecrawlError,
    OpenAIError,
    TaskTimeoutError,
    ValidationError,
)
from deep_research_tool.firecrawl import FirecrawlClient, create_firecrawl_client
from deep_research_tool.llm import OpenAIClient, create_openai_client
from deep_research_tool.logging_config import setup_logging
from deep_research_tool.parallel import BatchRunner, ParallelExecutionOptions, execute_parallel
from deep_research_tool.pipeline import ResearchPipeline, ResearchReport, run_research
from deep_research_tool.rate_limit import RateLimitOptions, RequestQueue, create_rate_limited_requester

__version__ = "0.1.0"
