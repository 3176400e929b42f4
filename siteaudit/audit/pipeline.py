"""The per-job operation the scheduler runs: analyze, research, rewrite."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from siteaudit.audit.models import AuditResult, Job, JobContext, SerpResult
from siteaudit.audit.reflexion import generate_with_reflexion
from siteaudit.audit.serp import fetch_serp_data

if TYPE_CHECKING:
    from siteaudit.audit.providers import AIProvider

logger = logging.getLogger(__name__)

SerpLookup = Callable[[str, Optional[str]], Awaitable[list[SerpResult]]]


async def run_full_analysis(
    job: Job,
    provider: "AIProvider",
    context: JobContext,
    serp_lookup: SerpLookup = fetch_serp_data,
) -> AuditResult:
    """Full AI audit of one page.

    1. ``provider.analyze`` with the site's pages as link candidates and the
       job's topic cluster.
    2. Competitor snippets for the inferred topic, unless the job already
       carries some.
    3. Suggestions through the reflexion loop.

    Provider errors (including ``RateLimitError``) propagate to the caller.
    """
    page = job.page
    analysis = await provider.analyze(page, context.all_pages, context.topic_cluster)

    serp = list(job.serp)
    if not serp and analysis.topic:
        serp = await serp_lookup(analysis.topic, context.target_location)
        logger.debug("[pipeline] %s: %d SERP snippet(s) for %r", page.url, len(serp), analysis.topic)

    suggestions = await generate_with_reflexion(
        provider,
        page,
        analysis,
        serp,
        target_location=context.target_location,
    )
    return AuditResult(url=page.url, analysis=analysis, suggestions=suggestions)
