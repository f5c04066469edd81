"""
OpenAI integration: analysis client, option/result types and research tools.
"""
from deep_research_tool.llm.client import OpenAIClient, create_openai_client
from deep_research_tool.llm.tools import (
    RESEARCH_TOOLS,
    VALIDATION_MODELS,
    ResearchInsights,
    SourceEvaluation,
    domain_specific_extractor,
    research_insights_extractor,
    research_questions_generator,
    source_evaluation_extractor,
)
from deep_research_tool.llm.types import (
    AnalysisOptions,
    AnalysisResult,
    OpenAIModel,
    ParallelAnalysisOptions,
    StreamChunk,
    StructuredAnalysisOptions,
    StructuredAnalysisResult,
    TokenUsage,
    ToolFunction,
)

__all__ = [
    "OpenAIClient",
    "create_openai_client",
    "RESEARCH_TOOLS",
    "VALIDATION_MODELS",
    "ResearchInsights",
    "SourceEvaluation",
    "domain_specific_extractor",
    "research_insights_extractor",
    "research_questions_generator",
    "source_evaluation_extractor",
    "AnalysisOptions",
    "AnalysisResult",
    "OpenAIModel",
    "ParallelAnalysisOptions",
    "StreamChunk",
    "StructuredAnalysisOptions",
    "StructuredAnalysisResult",
    "TokenUsage",
    "ToolFunction",
]
