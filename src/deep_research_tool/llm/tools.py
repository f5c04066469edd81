"""
Function-calling tool definitions for research data extraction, and the
pydantic models used to validate what the model returns for them.
"""
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from deep_research_tool.llm.types import ToolFunction

# -----------------------------
# Validation models
# -----------------------------

class KeyInsight(BaseModel):
    topic: str
    insight: str
    confidence: float = Field(..., ge=0, le=1)
    sources: Optional[List[str]] = None


class Perspective(BaseModel):
    viewpoint: str
    supportingEvidence: str


class Controversy(BaseModel):
    topic: str
    perspectives: List[Perspective] = Field(..., min_length=2)


class InsightsMetadata(BaseModel):
    topDomains: Optional[List[str]] = None
    researchTimeframe: Optional[str] = None
    queryTime: Optional[float] = None


class ResearchInsights(BaseModel):
    """Arguments of ``extract_research_insights``."""
    title: str
    summary: str = Field(..., min_length=100)
    keyInsights: List[KeyInsight] = Field(..., min_length=1)
    controversies: Optional[List[Controversy]] = None
    metadata: Optional[InsightsMetadata] = None


class RecencyDistribution(BaseModel):
    last6Months: Optional[float] = Field(None, ge=0, le=100)
    last2Years: Optional[float] = Field(None, ge=0, le=100)
    older: Optional[float] = Field(None, ge=0, le=100)


class SourceDiversity(BaseModel):
    domainDiversity: Optional[float] = Field(None, ge=0, le=1)
    perspectiveDiversity: Optional[float] = Field(None, ge=0, le=1)
    recencyDistribution: Optional[RecencyDistribution] = None


class EvaluatedSource(BaseModel):
    url: str = Field(..., pattern=r"^https?://")
    title: Optional[str] = None
    author: Optional[str] = None
    credibilityScore: float = Field(..., ge=0, le=1)
    relevanceScore: float = Field(..., ge=0, le=1)
    publicationDate: Optional[str] = None
    biasAssessment: Optional[Literal["minimal", "moderate", "significant", "unknown"]] = None
    key: Optional[bool] = None


class SourceEvaluation(BaseModel):
    """Arguments of ``evaluate_sources``."""
    sources: List[EvaluatedSource] = Field(..., min_length=1)
    overallAssessment: str
    sourceDiversity: Optional[SourceDiversity] = None


# -----------------------------
# Tool definitions
# -----------------------------

def _string(description: str, **extra) -> Dict:
    return {"type": "string", "description": description, **extra}


def _score(description: str) -> Dict:
    return {"type": "number", "description": description, "minimum": 0, "maximum": 1}


def _string_list(description: str) -> Dict:
    return {"type": "array", "description": description, "items": {"type": "string"}}


research_insights_extractor = ToolFunction(
    name="extract_research_insights",
    description="Extract key insights, findings, and conclusions from research content",
    parameters={
        "type": "object",
        "properties": {
            "title": _string("A concise title summarizing the research topic"),
            "summary": _string("A comprehensive summary of the research findings (250-500 words)"),
            "keyInsights": {
                "type": "array",
                "description": "The most important insights from the research",
                "items": {
                    "type": "object",
                    "properties": {
                        "topic": _string("The topic or subject of the insight"),
                        "insight": _string("The key insight or finding"),
                        "confidence": _score(
                            "Confidence score from 0.0 to 1.0 based on source reliability and consensus"
                        ),
                        "sources": _string_list("Source references supporting this insight"),
                    },
                    "required": ["topic", "insight", "confidence"],
                },
            },
            "controversies": {
                "type": "array",
                "description": "Areas of debate or conflicting information in the research",
                "items": {
                    "type": "object",
                    "properties": {
                        "topic": _string("The topic of controversy"),
                        "perspectives": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "viewpoint": _string("A specific perspective or viewpoint"),
                                    "supportingEvidence": _string("Evidence supporting this viewpoint"),
                                },
                                "required": ["viewpoint", "supportingEvidence"],
                            },
                        },
                    },
                    "required": ["topic", "perspectives"],
                },
            },
            "metadata": {
                "type": "object",
                "properties": {
                    "topDomains": _string_list("Most frequently cited domains in the research"),
                    "researchTimeframe": _string('The timeframe covered by the research (e.g., "2020-2023")'),
                    "queryTime": {"type": "number", "description": "Time in seconds taken to perform the research"},
                },
            },
        },
        "required": ["title", "summary", "keyInsights"],
    },
)

source_evaluation_extractor = ToolFunction(
    name="evaluate_sources",
    description="Evaluate the credibility and relevance of research sources",
    parameters={
        "type": "object",
        "properties": {
            "sources": {
                "type": "array",
                "description": "Evaluation of individual sources",
                "items": {
                    "type": "object",
                    "properties": {
                        "url": _string("The URL of the source"),
                        "title": _string("The title of the source"),
                        "author": _string("The author or organization behind the source"),
                        "credibilityScore": _score("Credibility score from 0.0 to 1.0"),
                        "relevanceScore": _score("Relevance score from 0.0 to 1.0 for the research query"),
                        "publicationDate": _string("Publication date if available"),
                        "biasAssessment": _string(
                            "Assessment of potential bias in the source",
                            enum=["minimal", "moderate", "significant", "unknown"],
                        ),
                        "key": {"type": "boolean", "description": "Whether this is a key source for the research"},
                    },
                    "required": ["url", "credibilityScore", "relevanceScore"],
                },
            },
            "overallAssessment": _string("Overall assessment of the source quality and diversity"),
            "sourceDiversity": {
                "type": "object",
                "properties": {
                    "domainDiversity": _score("Score from 0.0 to 1.0 representing the diversity of domains"),
                    "perspectiveDiversity": _score(
                        "Score from 0.0 to 1.0 representing the diversity of perspectives"
                    ),
                    "recencyDistribution": {
                        "type": "object",
                        "description": "Distribution of sources by recency",
                        "properties": {
                            "last6Months": {"type": "number", "description": "Percentage of sources from the last 6 months"},
                            "last2Years": {"type": "number", "description": "Percentage of sources from the last 2 years"},
                            "older": {"type": "number", "description": "Percentage of sources older than 2 years"},
                        },
                    },
                },
            },
        },
        "required": ["sources", "overallAssessment"],
    },
)

domain_specific_extractor = ToolFunction(
    name="extract_domain_specific_data",
    description="Extract structured data specific to a research domain",
    parameters={
        "type": "object",
        "properties": {
            "domain": _string(
                "The domain of the research",
                enum=["technology", "science", "health", "environment",
                      "business", "politics", "education", "other"],
            ),
            "domainSpecificData": {
                "type": "object",
                "description": "Domain-specific structured data",
                "additionalProperties": True,
            },
            "statistics": {
                "type": "array",
                "description": "Key statistics and figures from the research",
                "items": {
                    "type": "object",
                    "properties": {
                        "metric": _string("The name of the metric or statistic"),
                        "value": _string("The value of the metric (as a string to support various formats)"),
                        "context": _string("Context or explanation for the statistic"),
                        "source": _string("Source of the statistic"),
                    },
                    "required": ["metric", "value"],
                },
            },
            "trends": {
                "type": "array",
                "description": "Identified trends in the research area",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": _string("Name of the trend"),
                        "description": _string("Description of the trend"),
                        "direction": _string(
                            "Direction of the trend",
                            enum=["increasing", "decreasing", "stable", "fluctuating", "emerging"],
                        ),
                        "timeframe": _string("Timeframe of the trend"),
                    },
                    "required": ["name", "description", "direction"],
                },
            },
        },
        "required": ["domain"],
    },
)

research_questions_generator = ToolFunction(
    name="generate_research_questions",
    description="Generate follow-up research questions based on content analysis",
    parameters={
        "type": "object",
        "properties": {
            "primaryQuestions": {
                "type": "array",
                "description": "Primary follow-up questions that would yield valuable insights",
                "items": {
                    "type": "object",
                    "properties": {
                        "question": _string("The research question"),
                        "rationale": _string("Rationale for why this question is important"),
                        "expectedInsightValue": _string(
                            "Expected value of insights from this question",
                            enum=["high", "medium", "low"],
                        ),
                    },
                    "required": ["question", "rationale", "expectedInsightValue"],
                },
            },
            "knowledgeGaps": _string_list("Identified knowledge gaps in the current research"),
            "researchApproach": {
                "type": "object",
                "description": "Suggested approach for follow-up research",
                "properties": {
                    "recommendedSources": _string_list("Types of sources recommended for follow-up"),
                    "suggestedMethodology": _string("Suggested methodology for follow-up research"),
                },
            },
        },
        "required": ["primaryQuestions"],
    },
)

RESEARCH_TOOLS = {
    tool.name: tool
    for tool in (
        research_insights_extractor,
        source_evaluation_extractor,
        domain_specific_extractor,
        research_questions_generator,
    )
}

VALIDATION_MODELS = {
    research_insights_extractor.name: ResearchInsights,
    source_evaluation_extractor.name: SourceEvaluation,
}
