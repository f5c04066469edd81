"""
OpenAI analysis client
======================
Thin asynchronous wrapper over ``openai.AsyncOpenAI`` chat completions.

Highlights
~~~~~~~~~~
* **Plain and streamed analysis** - ``analyze`` / ``analyze_stream``.
* **Function calling** - ``structured_analysis`` sends tool schemas, parses
  the first tool call and validates it against an optional pydantic model.
* **Parallel analysis** - several prompts fanned out through
  :class:`~deep_research_tool.parallel.BatchRunner`.

SDK failures surface as :class:`~deep_research_tool.errors.OpenAIError`;
HTTP 429 responses are tagged as rate-limit errors.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import openai

from deep_research_tool.config import DEFAULT_OPENAI_MODEL, Settings
from deep_research_tool.errors import OpenAIError, wrap_api_error
from deep_research_tool.llm.types import (
    DEFAULT_STRUCTURED_SYSTEM_PROMPT,
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_TEMPERATURE,
    AnalysisOptions,
    AnalysisResult,
    ParallelAnalysisOptions,
    StreamChunk,
    StructuredAnalysisOptions,
    StructuredAnalysisResult,
    TokenUsage,
)
from deep_research_tool.llm.utils import (
    coerce_options,
    combine_stream_chunks,
    extract_token_usage,
    safe_json_parse,
    validate_with_schema,
)
from deep_research_tool.parallel import BatchRunner, ParallelExecutionOptions

logger = logging.getLogger(__name__)


def _to_openai_error(error: BaseException) -> OpenAIError:
    if isinstance(error, OpenAIError):
        return error
    if isinstance(error, openai.APIStatusError):
        return OpenAIError(error.message, error.status_code, error)
    return wrap_api_error(error, "OpenAI")


def _delta_fragment(chunk: Any) -> Optional[StreamChunk]:
    """Convert one streamed completion chunk into a StreamChunk (None for usage-only chunks)."""
    if not chunk.choices:
        return None

    choice = chunk.choices[0]
    delta = choice.delta
    function_name = None
    function_arguments = None
    tool_calls = (delta.tool_calls if delta is not None else None) or []
    # Only the first tool call is assembled; fragments of parallel calls are dropped.
    call = next((c for c in tool_calls if c.index == 0), None)
    if call is not None and call.function is not None:
        function_name = call.function.name or None
        function_arguments = call.function.arguments or None

    return StreamChunk(
        content=(delta.content if delta is not None else None) or None,
        function_name=function_name,
        function_arguments=function_arguments,
        is_complete=choice.finish_reason is not None,
    )


class OpenAIClient:
    """Research analysis on top of the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        settings: Optional[Settings] = None,
        client: Optional[Any] = None,
    ):
        """
        Initialize the client.

        Args:
            api_key: OpenAI API key. Falls back to ``settings.openai_api_key``.
            model: Default model. Falls back to settings, then ``chatgpt-4o-latest``.
            settings: Runtime settings.
            client: Pre-built ``AsyncOpenAI`` (or compatible) instance.
        """
        self.model = model or (settings.openai_model if settings else None) or DEFAULT_OPENAI_MODEL

        if client is not None:
            self.client = client
            return

        api_key = api_key or (settings.openai_api_key if settings else None)
        if not api_key:
            raise OpenAIError("OpenAI API key is required", 401)
        self.client = openai.AsyncOpenAI(api_key=api_key)

    # -----------------------------
    # Request building
    # -----------------------------

    def _request(self, options: AnalysisOptions, default_prompt: str) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "model": options.model or self.model,
            "temperature": DEFAULT_TEMPERATURE if options.temperature is None else options.temperature,
            "messages": [
                {"role": "system", "content": options.system_prompt or default_prompt},
                {"role": "user", "content": options.content},
            ],
        }
        if options.max_tokens is not None:
            request["max_tokens"] = options.max_tokens
        if options.tools:
            request["tools"] = [tool.to_tool() for tool in options.tools]
        if options.tool_choice is not None:
            request["tool_choice"] = options.tool_choice
        return request

    def _structured_request(self, options: StructuredAnalysisOptions) -> Dict[str, Any]:
        request = self._request(options, DEFAULT_STRUCTURED_SYSTEM_PROMPT)
        request["tools"] = [fn.to_tool() for fn in options.functions]
        if options.function_name:
            request["tool_choice"] = {"type": "function", "function": {"name": options.function_name}}
        else:
            request["tool_choice"] = "auto"
        return request

    async def _stream(self, request: Dict[str, Any]) -> AsyncIterator[Any]:
        try:
            stream = await self.client.chat.completions.create(
                **request, stream=True, stream_options={"include_usage": True}
            )
            async for chunk in stream:
                yield chunk
        except Exception as e:
            raise _to_openai_error(e) from e

    # -----------------------------
    # Analysis
    # -----------------------------

    async def analyze(self, options: Optional[Any] = None, **kwargs: Any) -> AnalysisResult:
        """
        Run a single chat completion.

        Args:
            options: AnalysisOptions instance or dict. Keyword arguments override it.

        Returns:
            The response text and token usage.
        """
        options = coerce_options(AnalysisOptions, options, kwargs)
        request = self._request(options, DEFAULT_SYSTEM_PROMPT)
        logger.debug(f"Performing analysis with model: {request['model']}")

        try:
            response = await self.client.chat.completions.create(**request)
        except Exception as e:
            raise _to_openai_error(e) from e

        content = response.choices[0].message.content if response.choices else None
        return AnalysisResult(content=content or "", usage=extract_token_usage(response.usage))

    async def analyze_stream(self, options: Optional[Any] = None, **kwargs: Any) -> AsyncIterator[StreamChunk]:
        """Stream a chat completion as StreamChunk fragments."""
        options = coerce_options(AnalysisOptions, options, kwargs)
        request = self._request(options, DEFAULT_SYSTEM_PROMPT)
        logger.debug(f"Streaming analysis with model: {request['model']}")

        async for chunk in self._stream(request):
            fragment = _delta_fragment(chunk)
            if fragment is not None:
                yield fragment

    async def structured_analysis(self, options: Optional[Any] = None, **kwargs: Any) -> StructuredAnalysisResult:
        """
        Extract structured data through function calling.

        Returns:
            The called function's name and parsed arguments. When ``output_model``
            is set and validation fails, the raw arguments are returned together
            with ``validation_errors``.

        Raises:
            OpenAIError: if the model did not call a function or returned malformed JSON.
        """
        options = coerce_options(StructuredAnalysisOptions, options, kwargs)
        request = self._structured_request(options)
        logger.debug(f"Performing structured analysis with model: {request['model']}")

        try:
            response = await self.client.chat.completions.create(**request)
        except Exception as e:
            raise _to_openai_error(e) from e

        message = response.choices[0].message if response.choices else None
        tool_calls = getattr(message, "tool_calls", None)
        if not tool_calls:
            raise OpenAIError("No function was called in the response")

        call = tool_calls[0]
        if getattr(call, "type", "function") != "function":
            raise OpenAIError(f"Unexpected tool call type: {call.type}")

        return self._build_result(
            call.function.name,
            call.function.arguments,
            options,
            extract_token_usage(response.usage),
        )

    async def structured_analysis_stream(
        self, options: Optional[Any] = None, **kwargs: Any
    ) -> AsyncIterator[StreamChunk]:
        """
        Stream a function-calling completion.

        Yields the argument fragments as they arrive, then one last chunk with
        ``is_complete=True`` whose ``result`` holds the parsed and validated call.
        """
        options = coerce_options(StructuredAnalysisOptions, options, kwargs)
        request = self._structured_request(options)
        logger.debug(f"Streaming structured analysis with model: {request['model']}")

        fragments: List[StreamChunk] = []
        usage = TokenUsage()
        async for chunk in self._stream(request):
            if getattr(chunk, "usage", None):
                usage = extract_token_usage(chunk.usage)
            fragment = _delta_fragment(chunk)
            if fragment is None:
                continue
            fragment.is_complete = False
            fragments.append(fragment)
            yield fragment

        _, function_name, arguments = combine_stream_chunks(fragments)
        if not function_name or not arguments:
            raise OpenAIError("No complete function call was found in the stream")

        yield StreamChunk(
            function_name=function_name,
            is_complete=True,
            result=self._build_result(function_name, arguments, options, usage),
        )

    def _build_result(
        self,
        function_name: str,
        arguments: str,
        options: StructuredAnalysisOptions,
        usage: TokenUsage,
    ) -> StructuredAnalysisResult:
        parsed = safe_json_parse(arguments)
        errors = None
        if options.output_model is not None:
            parsed, errors = validate_with_schema(parsed, options.output_model)
        return StructuredAnalysisResult(
            function_name=function_name,
            result=parsed,
            usage=usage,
            validation_errors=errors,
        )

    async def parallel_analysis(self, options: Optional[Any] = None, **kwargs: Any) -> List[AnalysisResult]:
        """
        Run several analyses through the batch runner.

        Returns:
            Results of the analyses that succeeded, in task order.
        """
        options = coerce_options(ParallelAnalysisOptions, options, kwargs)
        logger.info(f"Running {len(options.tasks)} analyses in parallel")

        def _task(task_options: AnalysisOptions):
            return lambda: self.analyze(task_options)

        runner = BatchRunner(ParallelExecutionOptions(
            max_concurrent=options.max_concurrent,
            abort_on_error=options.abort_on_error,
            timeout_ms=options.timeout_ms,
        ))
        batch = await runner.run([_task(t) for t in options.tasks])
        return batch.results


def create_openai_client(settings: Optional[Settings] = None, **kwargs: Any) -> OpenAIClient:
    """Factory returning an OpenAIClient configured from ``settings``."""
    return OpenAIClient(settings=settings, **kwargs)
