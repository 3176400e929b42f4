"""Request bodies shared by several routers."""

from __future__ import annotations

from pydantic import BaseModel

from siteaudit.crawler.models import PageRecord


class PageIn(BaseModel):
    url: str
    title: str = ""
    description: str = ""
    content: str = ""

    def to_record(self) -> PageRecord:
        return PageRecord(
            url=self.url,
            title=self.title,
            description=self.description,
            content=self.content,
        )
