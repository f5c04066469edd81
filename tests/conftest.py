"""
Common fixtures and setup for all tests.
"""
import asyncio
import json
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from deep_research_tool.config import Settings

DUMMY_KEYS = {
    "FIRECRAWL_API_KEY": "fc-test-dummy-api-key",
    "OPENAI_API_KEY": "sk-test-dummy-api-key",
}

# -----------------------------
# Environment setup
# -----------------------------

@pytest.fixture(autouse=True)
def setup_test_env():
    """
    Set up the test environment automatically for all tests.

    Both API keys are set to dummy values so that nothing under test can
    reach the real services with real credentials.
    """
    original = {name: os.environ.get(name) for name in DUMMY_KEYS}
    os.environ.update(DUMMY_KEYS)

    yield

    for name, value in original.items():
        if value is not None:
            os.environ[name] = value
        else:
            os.environ.pop(name, None)


@pytest.fixture
def settings():
    """Settings with dummy keys and the default research parameters."""
    return Settings(
        firecrawl_api_key=DUMMY_KEYS["FIRECRAWL_API_KEY"],
        openai_api_key=DUMMY_KEYS["OPENAI_API_KEY"],
        environment="test",
    )

# -----------------------------
# Fake clock
# -----------------------------

class FakeClock:
    """Clock whose sleep advances virtual time instead of waiting."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self.sleeps = []

    def now(self) -> float:
        return self._now

    async def sleep(self, ms: float) -> None:
        self.sleeps.append(ms)
        self._now += max(ms, 0)
        await asyncio.sleep(0)

    def advance(self, ms: float) -> None:
        self._now += ms


@pytest.fixture
def fake_clock():
    return FakeClock()

# -----------------------------
# aiohttp mocks
# -----------------------------

def make_http_response(status=200, json_data=None, text=""):
    """
    Build an object usable as ``async with session.request(...) as resp``.
    """
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=json_data)
    resp.text = AsyncMock(return_value=text or json.dumps(json_data))

    ctx = MagicMock()
    ctx.__aenter__ = AsyncMock(return_value=resp)
    ctx.__aexit__ = AsyncMock(return_value=False)
    return ctx


@pytest.fixture
def http_response():
    """Factory fixture for mocked aiohttp responses."""
    return make_http_response


@pytest.fixture
def mock_session():
    """
    A mocked aiohttp.ClientSession. Configure ``mock_session.request.side_effect``
    with a list of responses or a callable.
    """
    session = MagicMock()
    session.closed = False
    session.close = AsyncMock()
    session.request = MagicMock()
    return session

# -----------------------------
# OpenAI mocks
# -----------------------------

def make_usage(prompt=10, completion=5):
    return SimpleNamespace(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


def make_tool_call(name, arguments):
    if not isinstance(arguments, str):
        arguments = json.dumps(arguments)
    return SimpleNamespace(type="function", function=SimpleNamespace(name=name, arguments=arguments))


def make_completion(content=None, tool_calls=None, usage=None):
    """Build a chat completion response object."""
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason="tool_calls" if tool_calls else "stop")],
        usage=usage or make_usage(),
    )


def make_stream_chunk(content=None, function_name=None, arguments=None, finish_reason=None, usage=None, index=0):
    """Build one streamed chat completion chunk. ``usage`` alone gives a usage-only chunk."""
    if usage is not None and content is None and function_name is None and arguments is None:
        return SimpleNamespace(choices=[], usage=usage)

    tool_calls = None
    if function_name is not None or arguments is not None:
        tool_calls = [SimpleNamespace(
            index=index,
            function=SimpleNamespace(name=function_name, arguments=arguments),
        )]
    delta = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)], usage=usage)


async def stream_of(chunks):
    for chunk in chunks:
        yield chunk


@pytest.fixture
def mock_openai():
    """
    A mocked AsyncOpenAI client. Set ``mock_openai.chat.completions.create``'s
    return_value or side_effect per test.
    """
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


@pytest.fixture
def valid_insights():
    """Arguments that satisfy the ResearchInsights model."""
    return {
        "title": "Solid-state batteries in 2024",
        "summary": "Solid-state batteries promise higher energy density and better safety than "
                   "lithium-ion cells, but manufacturing at scale remains the main obstacle.",
        "keyInsights": [
            {
                "topic": "Energy density",
                "insight": "Prototype cells exceed 400 Wh/kg.",
                "confidence": 0.8,
                "sources": ["https://example.com/batteries"],
            }
        ],
        "metadata": {"topDomains": ["example.com"]},
    }
