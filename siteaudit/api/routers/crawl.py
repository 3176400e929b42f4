"""Crawl endpoint with Server-Sent Events (SSE) streaming.

Routes
------
POST /crawl    Body: {"url": "https://example.com", "sitemap_url": null}
               or    {"urls": ["https://example.com/a", ...]}

Events: ``status`` (stage messages), ``progress`` (per stage, reset when the
fetch stage starts), ``result`` (the page inventory), ``error``, ``done``.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from siteaudit.api.streaming import Emit, sse_response
from siteaudit.crawler import crawl_site, crawl_urls

router = APIRouter()


class CrawlRequest(BaseModel):
    url: Optional[str] = None
    sitemap_url: Optional[str] = None
    urls: Optional[list[str]] = None


@router.post("")
async def crawl(body: CrawlRequest) -> StreamingResponse:
    """Crawl a site (or an explicit URL list) and stream progress as SSE."""
    if not body.url and not body.urls:
        raise HTTPException(status_code=422, detail="Provide either 'url' or 'urls'.")

    async def run(emit: Emit) -> dict[str, Any]:
        def on_progress(completed: int, total: int) -> None:
            emit({"event": "progress", "completed": completed, "total": total})

        def on_status(message: str) -> None:
            emit({"event": "status", "message": message})

        if body.urls:
            pages = await crawl_urls(body.urls, on_progress, on_status)
        else:
            pages = await crawl_site(body.url, body.sitemap_url, on_progress, on_status)
        emit({"event": "result", "pages": [p.to_dict() for p in pages]})
        return {"pages": len(pages)}

    return sse_response(run)
