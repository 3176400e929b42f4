"""Self-correcting suggestion generation.

Model output is checked against the hard length rules.  Every violation is
itemised and fed back to the model for another attempt; when attempts run out
a deterministic fallback built from the page itself is returned instead.
Rate limits are never absorbed here: they propagate to the scheduler.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Sequence
from urllib.parse import urlparse

from siteaudit.audit.models import AnalysisResult, SerpResult, Suggestion
from siteaudit.config import settings
from siteaudit.crawler.models import PageRecord
from siteaudit.errors import GenerationError, RateLimitError

if TYPE_CHECKING:
    from siteaudit.audit.providers import AIProvider

logger = logging.getLogger(__name__)

FALLBACK_RATIONALE = (
    "Fallback: the AI could not produce suggestions within the length limits, "
    "so the existing copy was trimmed to fit."
)


@dataclass(frozen=True)
class LengthLimits:
    title_max: int = 60
    description_max: int = 160

    @classmethod
    def from_settings(cls) -> "LengthLimits":
        return cls(settings.title_max_length, settings.description_max_length)


def check_suggestion(suggestion: Suggestion, limits: LengthLimits) -> list[str]:
    """Return human-readable rule violations for one suggestion (empty if valid)."""
    problems: list[str] = []
    title = suggestion.title.strip()
    description = suggestion.description.strip()

    if not title:
        problems.append("Title is empty")
    elif len(title) > limits.title_max:
        problems.append(f"Title '{title}' is {len(title)} characters, max {limits.title_max}")

    if not description:
        problems.append("Description is empty")
    elif len(description) > limits.description_max:
        problems.append(
            f"Description '{description}' is {len(description)} characters, "
            f"max {limits.description_max}"
        )

    if not suggestion.rationale.strip():
        problems.append("Rationale is empty")
    return problems


def _truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    cut = text[:limit]
    # Prefer a word boundary when one is reasonably close to the limit.
    space = cut.rfind(" ")
    if space >= limit * 0.6:
        cut = cut[:space]
    return cut.rstrip(" ,;:-")


def _title_from_url(url: str) -> str:
    parsed = urlparse(url)
    segments = [s for s in parsed.path.split("/") if s]
    if not segments:
        return parsed.netloc
    slug = segments[-1].rsplit(".", 1)[0]
    words = slug.replace("-", " ").replace("_", " ").split()
    return " ".join(w.capitalize() for w in words) or parsed.netloc


def fallback_suggestion(page: PageRecord, limits: Optional[LengthLimits] = None) -> Suggestion:
    """Deterministic, always-valid suggestion derived from the page's own copy."""
    limits = limits or LengthLimits.from_settings()
    title = page.title.strip() or _title_from_url(page.url)
    description = page.description.strip() or page.content.strip() or title
    return Suggestion(
        title=_truncate(title, limits.title_max),
        description=_truncate(description, limits.description_max),
        rationale=FALLBACK_RATIONALE,
        is_fallback=True,
    )


async def generate_with_reflexion(
    provider: "AIProvider",
    page: PageRecord,
    analysis: AnalysisResult,
    serp: Sequence[SerpResult] = (),
    *,
    count: Optional[int] = None,
    limits: Optional[LengthLimits] = None,
    target_location: Optional[str] = None,
    max_attempts: Optional[int] = None,
) -> list[Suggestion]:
    """Generate *count* suggestions that all satisfy *limits*.

    Returns the first fully valid batch, or ``[fallback_suggestion(page)]``
    once *max_attempts* generations have been tried.  Any provider error
    other than a rate limit uses up one attempt.

    Raises:
        RateLimitError: Propagated untouched from the provider.
    """
    count = count if count is not None else settings.suggestion_count
    limits = limits or LengthLimits.from_settings()
    max_attempts = max_attempts if max_attempts is not None else settings.reflexion_max_attempts

    feedback: Optional[str] = None
    for attempt in range(1, max_attempts + 1):
        try:
            suggestions = await provider.generate(
                page,
                analysis,
                serp,
                count=count,
                title_max=limits.title_max,
                description_max=limits.description_max,
                target_location=target_location,
                feedback=feedback,
            )
        except RateLimitError:
            raise
        except GenerationError as exc:
            logger.info("[reflexion] %s attempt %d/%d unusable: %s", page.url, attempt, max_attempts, exc)
            feedback = f"- Your reply could not be used ({exc}). Return valid JSON matching the schema."
            continue
        except Exception as exc:
            logger.warning(
                "[reflexion] %s attempt %d/%d failed: %r", page.url, attempt, max_attempts, exc
            )
            feedback = "- The previous request failed. Return valid JSON matching the schema."
            continue

        violations: list[str] = []
        for index, suggestion in enumerate(suggestions, start=1):
            violations.extend(f"Suggestion {index}: {p}" for p in check_suggestion(suggestion, limits))
        if len(suggestions) < count:
            violations.append(f"Only {len(suggestions)} suggestion(s) returned, {count} required")

        if not violations:
            return suggestions[:count]

        logger.info(
            "[reflexion] %s attempt %d/%d had %d violation(s)",
            page.url, attempt, max_attempts, len(violations),
        )
        feedback = "\n".join(f"- {v}" for v in violations)

    logger.warning("[reflexion] %s exhausted %d attempt(s); using fallback", page.url, max_attempts)
    return [fallback_suggestion(page, limits)]
