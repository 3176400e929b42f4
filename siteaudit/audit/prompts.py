"""Prompt builders for page analysis and rewrite generation."""

from __future__ import annotations

import json
from typing import Optional, Sequence

from siteaudit.audit.models import AnalysisResult, ClusterPage, SerpResult
from siteaudit.crawler.models import PageRecord

_CONTENT_SNIPPET_CHARS = 2000
_MAX_LINK_CANDIDATES = 50

SYSTEM_PROMPT = (
    "You are an elite SEO analyst and copywriter. Reply with a single JSON "
    "value that conforms exactly to this JSON schema, with no prose or code "
    "fences around it:\n{schema}"
)


def system_prompt(schema: dict) -> str:
    return SYSTEM_PROMPT.format(schema=json.dumps(schema))


def analysis_prompt(
    page: PageRecord,
    all_pages: Sequence[PageRecord],
    topic_cluster: Sequence[ClusterPage],
) -> str:
    candidates = [p for p in all_pages if p.url != page.url][:_MAX_LINK_CANDIDATES]
    candidate_block = "\n".join(f"- URL: {p.url}\n  Title: {p.title}" for p in candidates)
    cluster_block = "\n".join(
        f"- {c.title} ({c.url}) [intent: {c.intent}]" for c in topic_cluster
    )

    return (
        "Perform an on-page SEO analysis of the following webpage.\n\n"
        "Page:\n"
        f"- URL: {page.url}\n"
        f"- Title: {page.title!r}\n"
        f"- Description: {page.description!r}\n"
        f"- Content (first {_CONTENT_SNIPPET_CHARS} chars): "
        f"{page.content[:_CONTENT_SNIPPET_CHARS]!r}\n\n"
        "Tasks:\n"
        "1. Distil the page's primary topic into a concise keyword phrase and "
        "classify its search intent.\n"
        "2. Grade the title (0-100) on length (under 60 chars), keyword "
        "placement, clarity and click-through potential.\n"
        "3. Grade the description (0-100) on length (under 160 chars), "
        "persuasiveness and call to action.\n"
        "4. Estimate the Flesch-Kincaid grade level and give one sentence of "
        "readability feedback.\n"
        "5. Give 3-4 tips for winning featured snippets and voice answers.\n"
        "6. Suggest up to 3 internal links, matching anchor text from the "
        "content with URLs from the candidates below.\n\n"
        f"Internal link candidates:\n{candidate_block or '(none)'}\n\n"
        f"Pages in the same topic cluster:\n{cluster_block or '(none)'}\n"
    )


def suggestion_prompt(
    page: PageRecord,
    analysis: AnalysisResult,
    serp: Sequence[SerpResult],
    count: int,
    title_max: int,
    description_max: int,
    target_location: Optional[str] = None,
    feedback: Optional[str] = None,
) -> str:
    if serp:
        competitors = "\n".join(
            f"- Competitor #{i}: title {r.title!r}; description {r.description!r}"
            for i, r in enumerate(serp, start=1)
        )
        competitor_block = (
            "Top-ranking competitors for this topic:\n"
            f"{competitors}\n"
            "Identify their patterns and weaknesses; every suggestion must stand "
            "out against this specific competition."
        )
    else:
        competitor_block = "No competitor data is available; follow general SEO best practice."

    if target_location:
        geo_block = (
            f"The business wants to rank in {target_location!r}. Work the location or "
            "local-intent phrasing in where it reads naturally; never force it."
        )
    else:
        geo_block = "The audience is global; avoid location-specific terms."

    prompt = (
        f"Write {count} distinct rewrite suggestions for the meta title and meta "
        "description of this page.\n\n"
        f"- URL: {page.url}\n"
        f"- Core topic: {analysis.topic!r}\n"
        f"- Current title: {page.title!r}\n"
        f"- Current description: {page.description!r}\n\n"
        f"{competitor_block}\n\n"
        f"{geo_block}\n\n"
        "Hard rules for EVERY suggestion:\n"
        f"1. title: at most {title_max} characters, benefit-driven and specific.\n"
        f"2. description: at most {description_max} characters; the first sentence "
        "answers the query directly and it ends with a natural call to action.\n"
        "3. rationale: one non-empty sentence explaining the competitive angle.\n"
        f'Return {{"suggestions": [...]}} with exactly {count} items.\n'
    )
    if feedback:
        prompt += (
            "\nYour previous answer broke these rules. Fix every item listed and "
            f"answer again:\n{feedback}\n"
        )
    return prompt
