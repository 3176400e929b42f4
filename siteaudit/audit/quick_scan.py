"""Programmatic (non-AI) audit of a crawled page inventory.

Flags objective title/description problems, including duplicates across the
whole site, without making a single API call.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Iterable

from siteaudit.crawler.models import PageRecord

TITLE_MAX = 60
TITLE_MIN = 30
DESCRIPTION_MAX = 160
DESCRIPTION_MIN = 70


@dataclass(frozen=True)
class QuickScanResult:
    is_title_missing: bool
    is_title_too_long: bool
    is_title_too_short: bool
    is_description_missing: bool
    is_description_too_long: bool
    is_description_too_short: bool
    is_title_duplicate: bool
    is_description_duplicate: bool


@dataclass
class ScannedPage:
    page: PageRecord
    quick_scan: QuickScanResult
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            **self.page.to_dict(),
            "issues": list(self.issues),
            "quick_scan": asdict(self.quick_scan),
        }


_ISSUE_LABELS = (
    ("is_title_missing", "Missing Title"),
    ("is_title_too_long", "Title Too Long"),
    ("is_title_too_short", "Title Too Short"),
    ("is_title_duplicate", "Duplicate Title"),
    ("is_description_missing", "Missing Description"),
    ("is_description_too_long", "Description Too Long"),
    ("is_description_too_short", "Description Too Short"),
    ("is_description_duplicate", "Duplicate Description"),
)


def quick_scan(pages: Iterable[PageRecord]) -> list[ScannedPage]:
    """Return one :class:`ScannedPage` per input page, in input order."""
    pages = list(pages)
    title_counts = Counter(p.title for p in pages if p.title)
    description_counts = Counter(p.description for p in pages if p.description)

    scanned: list[ScannedPage] = []
    for page in pages:
        title, description = page.title, page.description
        result = QuickScanResult(
            is_title_missing=not title,
            is_title_too_long=len(title) > TITLE_MAX,
            is_title_too_short=0 < len(title) < TITLE_MIN,
            is_description_missing=not description,
            is_description_too_long=len(description) > DESCRIPTION_MAX,
            is_description_too_short=0 < len(description) < DESCRIPTION_MIN,
            is_title_duplicate=bool(title) and title_counts[title] > 1,
            is_description_duplicate=bool(description) and description_counts[description] > 1,
        )
        issues = [label for attr, label in _ISSUE_LABELS if getattr(result, attr)]
        scanned.append(ScannedPage(page=page, quick_scan=result, issues=issues))
    return scanned
