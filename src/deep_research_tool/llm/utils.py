"""
Helpers shared by the OpenAI client.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as SchemaValidationError

from deep_research_tool.errors import OpenAIError, ValidationError
from deep_research_tool.llm.types import StreamChunk, TokenUsage

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def safe_json_parse(text: str) -> Any:
    """Parse a JSON string, raising OpenAIError on malformed input."""
    try:
        return json.loads(text)
    except (TypeError, json.JSONDecodeError) as e:
        raise OpenAIError(f"Failed to parse JSON: {e}") from e


def validate_with_schema(data: Any, model: Type[M]) -> Tuple[Any, Optional[List[Dict[str, Any]]]]:
    """
    Validate ``data`` against a pydantic model.

    Validation failures are logged and returned rather than raised, so that a
    slightly malformed model response is still usable.

    Returns:
        ``(model_instance, None)`` on success, ``(data, errors)`` on failure.
    """
    try:
        return model.model_validate(data), None
    except SchemaValidationError as e:
        errors = e.errors(include_url=False)
        logger.warning(f"Schema validation failed for {model.__name__}: {len(errors)} errors")
        return data, errors


def coerce_options(model: Type[M], options: Optional[Any], overrides: Dict[str, Any]) -> M:
    """
    Build an options model from an instance, a dict, or keyword arguments.

    Raises:
        ValidationError: if the options are invalid.
    """
    if isinstance(options, model) and not overrides:
        return options

    values: Dict[str, Any] = {}
    if isinstance(options, BaseModel):
        values.update(dict(options))
    elif isinstance(options, dict):
        values.update(options)
    elif options is not None:
        raise ValidationError(f"Expected {model.__name__} or dict, got {type(options).__name__}")
    values.update(overrides)

    try:
        return model(**values)
    except SchemaValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e}") from e


def extract_token_usage(usage: Any) -> TokenUsage:
    """Convert an OpenAI usage object (or dict, or None) into TokenUsage."""
    if usage is None:
        return TokenUsage()
    if isinstance(usage, dict):
        get = usage.get
    else:
        def get(key):
            return getattr(usage, key, None)
    return TokenUsage(
        prompt_tokens=get("prompt_tokens") or 0,
        completion_tokens=get("completion_tokens") or 0,
        total_tokens=get("total_tokens") or 0,
    )


def combine_stream_chunks(chunks: Iterable[StreamChunk]) -> Tuple[str, Optional[str], str]:
    """
    Combine streamed fragments into ``(content, function_name, function_arguments)``.

    The first function name seen wins; argument fragments are concatenated.
    """
    content = []
    function_name: Optional[str] = None
    arguments = []

    for chunk in chunks:
        if chunk.content:
            content.append(chunk.content)
        if chunk.function_name and not function_name:
            function_name = chunk.function_name
        if chunk.function_arguments:
            arguments.append(chunk.function_arguments)

    return "".join(content), function_name, "".join(arguments)
