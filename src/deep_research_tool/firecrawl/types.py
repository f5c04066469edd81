"""
Data classes for the Firecrawl deep research API.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from deep_research_tool.errors import FirecrawlError


class ResearchStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ResearchStatus.COMPLETED, ResearchStatus.FAILED)


@dataclass
class ResearchSource:
    url: str
    title: Optional[str] = None
    relevance: Optional[str] = None  # "high" | "medium" | "low"
    snippet: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResearchSource":
        return cls(
            url=data.get("url", ""),
            title=data.get("title"),
            relevance=data.get("relevance"),
            snippet=data.get("snippet"),
        )


@dataclass
class ResearchActivity:
    type: str  # search | crawl | extract | analyze | summarize
    url: Optional[str] = None
    query: Optional[str] = None
    result: Optional[str] = None
    timestamp: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResearchActivity":
        return cls(
            type=data.get("type", ""),
            url=data.get("url"),
            query=data.get("query"),
            result=data.get("result"),
            timestamp=data.get("timestamp"),
        )


@dataclass
class ResearchData:
    final_analysis: str = ""
    activities: List[ResearchActivity] = field(default_factory=list)
    sources: List[ResearchSource] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ResearchData":
        data = data or {}
        return cls(
            final_analysis=data.get("finalAnalysis") or "",
            activities=[ResearchActivity.from_dict(a) for a in data.get("activities") or []],
            sources=[ResearchSource.from_dict(s) for s in data.get("sources") or []],
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class DeepResearchResponse:
    """A deep research job as reported by Firecrawl."""
    id: str
    status: ResearchStatus
    data: ResearchData = field(default_factory=ResearchData)
    progress: Optional[float] = None
    error: Optional[str] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def source_urls(self) -> List[str]:
        return [s.url for s in self.data.sources if s.url]

    @classmethod
    def from_dict(cls, payload: Any, job_id: Optional[str] = None) -> "DeepResearchResponse":
        """
        Parse a JSON response body.

        Args:
            payload: Decoded JSON body.
            job_id: Job id to use when the body does not repeat it (status checks).

        Raises:
            FirecrawlError: if the body is not an object or has an unknown status.
        """
        if not isinstance(payload, dict):
            raise FirecrawlError("Invalid API response format")

        if payload.get("success") is False:
            raise FirecrawlError(payload.get("error") or "Request was not successful", 400)

        try:
            status = ResearchStatus(payload.get("status") or ResearchStatus.PENDING.value)
        except ValueError:
            raise FirecrawlError(f"Invalid API response format (unknown status {payload.get('status')!r})")

        research_id = payload.get("id") or job_id
        if not research_id:
            raise FirecrawlError("Invalid API response format (missing research id)")

        return cls(
            id=research_id,
            status=status,
            data=ResearchData.from_dict(payload.get("data")),
            progress=payload.get("progress"),
            error=payload.get("error"),
            created_at=payload.get("createdAt"),
            completed_at=payload.get("completedAt"),
        )

    def to_json(self) -> str:
        """Serialize response to JSON string."""
        return json.dumps(asdict(self), ensure_ascii=False)
