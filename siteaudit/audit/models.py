"""Data models for AI analysis, suggestion generation and job scheduling.

Provider-facing shapes (anything an LLM must produce) are Pydantic models so
their JSON schema can be embedded in prompts and responses validated against
it.  Internal bookkeeping types are plain dataclasses.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

from pydantic import BaseModel, Field

from siteaudit.crawler.models import PageRecord
from siteaudit.errors import IllegalTransitionError

if TYPE_CHECKING:
    from siteaudit.audit.providers import AIProvider

DEFAULT_TOPIC = "Uncategorized"
DEFAULT_INTENT = "informational"


# ---------------------------------------------------------------------------
# Provider-facing schemas
# ---------------------------------------------------------------------------

class InternalLinkSuggestion(BaseModel):
    anchor_text: str = Field(description="A phrase from the page content to use as anchor text.")
    target_url: str = Field(description="The most relevant internal URL from the candidate list.")
    rationale: str = Field(description="One sentence on why this link helps.")


class AnalysisResult(BaseModel):
    """Structured on-page analysis of one page."""

    topic: str = Field(description="Primary topic or keyword phrase of the page.")
    search_intent: str = Field(
        default=DEFAULT_INTENT,
        description="One of: informational, navigational, transactional, commercial.",
    )
    title_grade: int = Field(ge=0, le=100, description="SEO score for the title (0-100).")
    title_feedback: str = Field(description="1-2 sentences of actionable title feedback.")
    description_grade: int = Field(ge=0, le=100, description="SEO score for the description (0-100).")
    description_feedback: str = Field(description="1-2 sentences of actionable description feedback.")
    readability_grade: Optional[float] = Field(
        default=None, description="Flesch-Kincaid reading grade level of the content."
    )
    readability_feedback: Optional[str] = None
    aeo_feedback: list[str] = Field(
        default_factory=list,
        description="3-4 tips to win featured snippets and voice answers.",
    )
    internal_link_suggestions: list[InternalLinkSuggestion] = Field(default_factory=list)

    @property
    def grade(self) -> int:
        """Combined grade: the rounded mean of title and description grades."""
        return round((self.title_grade + self.description_grade) / 2)


class Suggestion(BaseModel):
    """A single rewrite suggestion for a page's meta title and description."""

    title: str = Field(description="New SEO-optimised meta title.")
    description: str = Field(description="New compelling meta description.")
    rationale: str = Field(description="One sentence on why this suggestion wins the click.")
    competitive_differentiator: Optional[str] = None
    expected_ctr_lift: Optional[str] = None
    is_fallback: bool = False


class SuggestionBatch(BaseModel):
    suggestions: list[Suggestion]


# ---------------------------------------------------------------------------
# Cross-page context
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SerpResult:
    """A competitor snippet from a live search result page."""

    title: str
    url: str
    description: str


@dataclass(frozen=True)
class ClusterPage:
    """A topic-cluster sibling, as listed in the topic index."""

    url: str
    title: str
    intent: str = DEFAULT_INTENT


@dataclass(frozen=True)
class TopicLabel:
    """Topic and intent known for a page from a previous analysis."""

    topic: str = DEFAULT_TOPIC
    intent: str = DEFAULT_INTENT


@dataclass
class SiteContext:
    """Run-wide context shared by every job of a scheduling run."""

    pages: list[PageRecord] = field(default_factory=list)
    topics: dict[str, TopicLabel] = field(default_factory=dict)
    target_location: Optional[str] = None


@dataclass
class Job:
    """One page queued for analysis.  Only the scheduler mutates ``retries``."""

    page: PageRecord
    retries: int = 0
    serp: list[SerpResult] = field(default_factory=list)
    topic_cluster: list[ClusterPage] = field(default_factory=list)

    @property
    def url(self) -> str:
        return self.page.url


@dataclass(frozen=True)
class JobContext:
    """What a single job gets to see of the rest of the site."""

    all_pages: list[PageRecord]
    topic_cluster: list[ClusterPage]
    target_location: Optional[str] = None


@dataclass
class AuditResult:
    """Final per-page output of a scheduling run."""

    url: str
    analysis: AnalysisResult
    suggestions: list[Suggestion]

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "grade": self.analysis.grade,
            "analysis": self.analysis.model_dump(),
            "suggestions": [s.model_dump() for s in self.suggestions],
        }


# ---------------------------------------------------------------------------
# Tagged job outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Success:
    result: AuditResult


@dataclass(frozen=True)
class RateLimited:
    reason: str


@dataclass(frozen=True)
class Failed:
    reason: str
    error: Optional[BaseException] = None


JobOutcome = Union[Success, RateLimited, Failed]


# ---------------------------------------------------------------------------
# Worker state machine
# ---------------------------------------------------------------------------

class WorkerStatus(str, Enum):
    READY = "ready"
    BUSY = "busy"
    COOLING_DOWN = "cooling_down"


_LEGAL_TRANSITIONS: dict[WorkerStatus, frozenset[WorkerStatus]] = {
    WorkerStatus.READY: frozenset({WorkerStatus.BUSY}),
    WorkerStatus.BUSY: frozenset({WorkerStatus.READY, WorkerStatus.COOLING_DOWN}),
    WorkerStatus.COOLING_DOWN: frozenset({WorkerStatus.READY}),
}


@dataclass
class Worker:
    """One provider credential and its scheduling status."""

    provider: "AIProvider"
    status: WorkerStatus = WorkerStatus.READY
    cooldown_until: Optional[float] = None

    @property
    def id(self) -> str:
        return self.provider.id

    def transition(self, new_status: WorkerStatus) -> None:
        if new_status not in _LEGAL_TRANSITIONS[self.status]:
            raise IllegalTransitionError(
                f"Worker {self.id}: {self.status.value} -> {new_status.value} is not allowed"
            )
        self.status = new_status

    def start_cooldown(self, seconds: float) -> None:
        self.transition(WorkerStatus.COOLING_DOWN)
        self.cooldown_until = time.monotonic() + seconds

    def finish_cooldown(self) -> None:
        self.transition(WorkerStatus.READY)
        self.cooldown_until = None

    def cooldown_remaining(self) -> float:
        if self.cooldown_until is None:
            return 0.0
        return max(0.0, self.cooldown_until - time.monotonic())


@dataclass
class SchedulerSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    cooldowns: int = 0
    retries: int = 0

    @property
    def completed(self) -> int:
        return self.succeeded + self.failed
