"""
Request options and result types for the OpenAI integration.

Request options are pydantic models so they are validated on construction;
results are plain dataclasses.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class OpenAIModel(str, Enum):
    GPT4O = "gpt-4o"
    GPT4O_LATEST = "chatgpt-4o-latest"
    GPT4O_SEARCH = "gpt-4o-search-preview"


DEFAULT_SYSTEM_PROMPT = "You are a helpful research assistant."
DEFAULT_STRUCTURED_SYSTEM_PROMPT = (
    "You are a research analysis assistant that processes information and extracts structured data."
)
DEFAULT_TEMPERATURE = 0.2


# -----------------------------
# Function calling
# -----------------------------

class ToolFunction(BaseModel):
    """A function the model may call, described by a JSON schema."""
    name: str = Field(..., min_length=1)
    description: str
    parameters: Dict[str, Any]

    def to_tool(self) -> Dict[str, Any]:
        """Chat completions ``tools`` entry for this function."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


# -----------------------------
# Request options
# -----------------------------

class AnalysisOptions(BaseModel):
    content: str = Field(..., min_length=1)
    system_prompt: Optional[str] = None
    model: Optional[str] = None
    temperature: Optional[float] = Field(None, ge=0, le=2)
    max_tokens: Optional[int] = Field(None, gt=0)
    tools: Optional[List[ToolFunction]] = None
    tool_choice: Optional[Literal["auto", "none", "required"]] = None


class StructuredAnalysisOptions(AnalysisOptions):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    functions: List[ToolFunction] = Field(..., min_length=1)
    function_name: Optional[str] = None  # force this function instead of letting the model choose
    output_model: Optional[Type[BaseModel]] = None  # validates the parsed arguments when set


class ParallelAnalysisOptions(BaseModel):
    tasks: List[AnalysisOptions] = Field(..., min_length=1)
    max_concurrent: int = Field(3, gt=0)
    abort_on_error: bool = False
    timeout_ms: int = Field(60_000, gt=0)


# -----------------------------
# Results
# -----------------------------

@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass
class AnalysisResult:
    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)


@dataclass
class StructuredAnalysisResult:
    function_name: str
    result: Any
    usage: TokenUsage = field(default_factory=TokenUsage)
    validation_errors: Optional[List[Dict[str, Any]]] = None

    @property
    def is_valid(self) -> bool:
        return not self.validation_errors


@dataclass
class StreamChunk:
    """One streamed fragment. The final chunk of a structured stream carries ``result``."""
    content: Optional[str] = None
    function_name: Optional[str] = None
    function_arguments: Optional[str] = None
    is_complete: bool = False
    result: Optional[StructuredAnalysisResult] = None
