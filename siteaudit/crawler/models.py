"""Data models for the crawl pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class PageRecord:
    """Metadata and readable content for a single crawled URL.

    ``url`` is the identity of a record; a crawl never yields two records
    with the same URL.
    """

    url: str
    title: str
    description: str
    content: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PageRecord":
        return cls(
            url=data["url"],
            title=data.get("title", "") or "",
            description=data.get("description", "") or "",
            content=data.get("content", "") or "",
        )
