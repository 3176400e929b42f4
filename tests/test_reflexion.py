"""Tests for siteaudit.audit.reflexion and the per-job pipeline."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from siteaudit.audit.models import AnalysisResult, ClusterPage, Job, JobContext, SerpResult, Suggestion
from siteaudit.audit.pipeline import run_full_analysis
from siteaudit.audit.providers import AIProvider, ProviderConfig
from siteaudit.audit.reflexion import (
    LengthLimits,
    check_suggestion,
    fallback_suggestion,
    generate_with_reflexion,
)
from siteaudit.crawler.models import PageRecord
from siteaudit.errors import GenerationError, RateLimitError

LIMITS = LengthLimits(title_max=60, description_max=160)

_PAGE = PageRecord(
    url="https://ex.com/blog/best-trail-running-shoes/",
    title="Best Trail Running Shoes",
    description="Our guide to trail running shoes.",
    content="Grip, drop and cushioning explained.",
)

_ANALYSIS = AnalysisResult(
    topic="trail running shoes",
    title_grade=70,
    title_feedback="Fine.",
    description_grade=50,
    description_feedback="Too short.",
)


def _ok(n: int = 1) -> Suggestion:
    return Suggestion(
        title=f"Trail Running Shoes Tested: Our {n} Top Picks",
        description="We ran 500 miles in 20 pairs. See which trail shoes grip best. Read the guide.",
        rationale="Specific numbers beat vague claims.",
    )


def _too_long() -> Suggestion:
    return Suggestion(title="T" * 73, description="D" * 40, rationale="R")


class ScriptedProvider(AIProvider):
    """``generate`` returns (or raises) the next scripted item."""

    vendor = "scripted"

    def __init__(self, script: list) -> None:
        super().__init__(ProviderConfig(provider="openai", api_key="k", id="scripted-1"))
        self.script = list(script)
        self.feedback: list = []

    async def _complete(self, system: str, prompt: str) -> str:
        raise AssertionError("not used")

    async def analyze(self, page, all_pages=(), topic_cluster=()):
        self.analyzed_with = (page, list(all_pages), list(topic_cluster))
        return _ANALYSIS

    async def generate(self, page, analysis, serp=(), **kwargs):
        self.feedback.append(kwargs.get("feedback"))
        self.serp = list(serp)
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


# ===========================================================================
# check_suggestion
# ===========================================================================

class TestCheckSuggestion:
    def test_valid(self):
        assert check_suggestion(_ok(), LIMITS) == []

    def test_itemises_overlong_title(self):
        assert check_suggestion(_too_long(), LIMITS) == [f"Title '{'T' * 73}' is 73 characters, max 60"]

    def test_overlong_description(self):
        s = Suggestion(title="Fine", description="d" * 161, rationale="r")
        [problem] = check_suggestion(s, LIMITS)
        assert problem.endswith("is 161 characters, max 160")

    def test_empty_fields(self):
        s = Suggestion(title=" ", description="", rationale="")
        assert check_suggestion(s, LIMITS) == ["Title is empty", "Description is empty", "Rationale is empty"]

    def test_exact_limits_pass(self):
        s = Suggestion(title="t" * 60, description="d" * 160, rationale="r")
        assert check_suggestion(s, LIMITS) == []


# ===========================================================================
# fallback_suggestion
# ===========================================================================

class TestFallback:
    def test_trims_to_limits_and_is_marked(self):
        page = PageRecord("https://ex.com/a", "word " * 30, "sentence " * 40, "")
        s = fallback_suggestion(page, LIMITS)

        assert s.is_fallback is True
        assert s.rationale.startswith("Fallback")
        assert 0 < len(s.title) <= 60
        assert 0 < len(s.description) <= 160
        assert check_suggestion(s, LIMITS) == []

    def test_title_from_slug_when_missing(self):
        page = PageRecord(_PAGE.url, "", "desc", "")
        assert fallback_suggestion(page, LIMITS).title == "Best Trail Running Shoes"

    def test_homepage_title_is_host(self):
        page = PageRecord("https://ex.com/", "", "desc", "")
        assert fallback_suggestion(page, LIMITS).title == "ex.com"

    def test_description_from_content_when_missing(self):
        page = PageRecord("https://ex.com/a", "Title", "", "Body text here.")
        assert fallback_suggestion(page, LIMITS).description == "Body text here."

    def test_page_without_copy_still_valid(self):
        page = PageRecord("https://ex.com/contact", "Contact", "", "")
        s = fallback_suggestion(page, LIMITS)

        assert s.description == "Contact"
        assert check_suggestion(s, LIMITS) == []

    def test_bare_page_uses_slug_for_both_fields(self):
        page = PageRecord("https://ex.com/about-us/", "", "", "")
        s = fallback_suggestion(page, LIMITS)

        assert (s.title, s.description) == ("About Us", "About Us")
        assert check_suggestion(s, LIMITS) == []


# ===========================================================================
# generate_with_reflexion
# ===========================================================================

class TestReflexionLoop:
    async def test_first_valid_batch_returned(self):
        provider = ScriptedProvider([[_ok(1), _ok(2), _ok(3)]])
        result = await generate_with_reflexion(provider, _PAGE, _ANALYSIS, count=3, limits=LIMITS)

        assert len(result) == 3
        assert provider.feedback == [None]

    async def test_violations_fed_back(self):
        provider = ScriptedProvider([[_too_long()], [_ok()]])
        result = await generate_with_reflexion(provider, _PAGE, _ANALYSIS, count=1, limits=LIMITS)

        assert result == [_ok()]
        assert provider.feedback[0] is None
        assert "Suggestion 1: Title '" in provider.feedback[1]
        assert "is 73 characters, max 60" in provider.feedback[1]

    async def test_count_shortfall_is_a_violation(self):
        provider = ScriptedProvider([[_ok()], [_ok(1), _ok(2)]])
        result = await generate_with_reflexion(provider, _PAGE, _ANALYSIS, count=2, limits=LIMITS)

        assert len(result) == 2
        assert "Only 1 suggestion(s) returned, 2 required" in provider.feedback[1]

    async def test_extra_suggestions_trimmed(self):
        provider = ScriptedProvider([[_ok(1), _ok(2), _ok(3), _ok(4)]])
        result = await generate_with_reflexion(provider, _PAGE, _ANALYSIS, count=3, limits=LIMITS)
        assert len(result) == 3

    async def test_exhaustion_returns_fallback(self):
        provider = ScriptedProvider([[_too_long()]] * 3)
        result = await generate_with_reflexion(
            provider, _PAGE, _ANALYSIS, count=1, limits=LIMITS, max_attempts=3
        )

        assert len(provider.feedback) == 3
        [fallback] = result
        assert fallback.is_fallback is True
        assert fallback.title == "Best Trail Running Shoes"

    async def test_generation_errors_consume_attempts(self):
        provider = ScriptedProvider([GenerationError("bad json"), GenerationError("bad json")])
        result = await generate_with_reflexion(
            provider, _PAGE, _ANALYSIS, count=1, limits=LIMITS, max_attempts=2
        )
        assert result[0].is_fallback is True
        assert "bad json" in provider.feedback[1]

    async def test_transport_errors_end_in_fallback(self):
        provider = ScriptedProvider([ConnectionError("upstream reset")] * 3)
        result = await generate_with_reflexion(
            provider, _PAGE, _ANALYSIS, count=1, limits=LIMITS, max_attempts=3
        )

        [fallback] = result
        assert fallback.is_fallback is True
        assert len(provider.feedback) == 3
        assert provider.feedback[1] is not None

    async def test_recovers_after_transient_error(self):
        provider = ScriptedProvider([TimeoutError("slow"), [_ok()]])
        result = await generate_with_reflexion(provider, _PAGE, _ANALYSIS, count=1, limits=LIMITS)
        assert result == [_ok()]

    async def test_rate_limit_propagates(self):
        provider = ScriptedProvider([[_too_long()], RateLimitError("429")])
        with pytest.raises(RateLimitError):
            await generate_with_reflexion(provider, _PAGE, _ANALYSIS, count=1, limits=LIMITS)


# ===========================================================================
# run_full_analysis
# ===========================================================================

class TestRunFullAnalysis:
    async def test_fetches_serp_for_inferred_topic(self):
        provider = ScriptedProvider([[_ok(1), _ok(2), _ok(3)]])
        serp = [SerpResult("Rival", "https://rival.com", "desc")]
        lookup = AsyncMock(return_value=serp)
        cluster = [ClusterPage("https://ex.com/blog/road-shoes/", "Road Shoes")]
        context = JobContext(all_pages=[_PAGE], topic_cluster=cluster, target_location="Denver")

        result = await run_full_analysis(Job(page=_PAGE), provider, context, serp_lookup=lookup)

        lookup.assert_awaited_once_with("trail running shoes", "Denver")
        assert provider.serp == serp
        assert provider.analyzed_with[2] == cluster
        assert result.url == _PAGE.url
        assert result.analysis is _ANALYSIS
        assert len(result.suggestions) == 3

    async def test_job_serp_reused(self):
        provider = ScriptedProvider([[_ok(1), _ok(2), _ok(3)]])
        lookup = AsyncMock()
        job = Job(page=_PAGE, serp=[SerpResult("Cached", "https://c.com", "d")])

        await run_full_analysis(job, provider, JobContext(all_pages=[], topic_cluster=[]), serp_lookup=lookup)

        lookup.assert_not_awaited()
        assert provider.serp[0].title == "Cached"

    async def test_provider_errors_propagate(self):
        provider = ScriptedProvider([])
        provider.analyze = AsyncMock(side_effect=RateLimitError("429"))
        with pytest.raises(RateLimitError):
            await run_full_analysis(
                Job(page=_PAGE), provider, JobContext(all_pages=[], topic_cluster=[]), serp_lookup=AsyncMock()
            )
