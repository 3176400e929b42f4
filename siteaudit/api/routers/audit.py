"""AI audit endpoint with Server-Sent Events (SSE) streaming.

Routes
------
POST /audit    Body: {"pages": [...], "credentials": "openai:sk-...,groq:gsk-...",
                      "target_location": "Austin, TX", "topics": {url: {...}}}

One scheduler worker is created per credential entry (``AI_CREDENTIALS`` when
the body has none).  Events: ``progress`` (with ``active_workers``),
``result`` (one per audited page), ``error`` (one per permanently failed
page), ``done`` (with the run summary).
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from siteaudit.api.schemas import PageIn
from siteaudit.api.streaming import Emit, sse_response
from siteaudit.audit.models import AuditResult, Job, SiteContext, TopicLabel
from siteaudit.audit.providers import build_provider, parse_credentials
from siteaudit.audit.scheduler import JobScheduler
from siteaudit.config import settings
from siteaudit.errors import ProviderConfigError

router = APIRouter()


class TopicIn(BaseModel):
    topic: str = "Uncategorized"
    intent: str = "informational"


class AuditRequest(BaseModel):
    pages: list[PageIn]
    credentials: Optional[str] = None
    target_location: Optional[str] = None
    topics: dict[str, TopicIn] = {}


@router.post("")
async def audit(body: AuditRequest) -> StreamingResponse:
    """Run the AI audit over *pages* and stream per-page results as SSE."""
    try:
        configs = parse_credentials(body.credentials or settings.ai_credentials)
    except ProviderConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not configs:
        raise HTTPException(status_code=400, detail="No AI credentials configured.")

    records = [p.to_record() for p in body.pages]
    if len({r.url for r in records}) != len(records):
        raise HTTPException(status_code=422, detail="Duplicate page URLs in request.")

    providers = [build_provider(c) for c in configs]
    context = SiteContext(
        pages=records,
        topics={url: TopicLabel(t.topic, t.intent) for url, t in body.topics.items()},
        target_location=body.target_location,
    )

    async def run(emit: Emit) -> dict[str, Any]:
        scheduler: JobScheduler

        def on_progress(completed: int, total: int) -> None:
            emit({
                "event": "progress",
                "completed": completed,
                "total": total,
                "active_workers": scheduler.active_workers,
            })

        def on_result(result: AuditResult) -> None:
            emit({"event": "result", **result.to_dict()})

        def on_error(url: str, error: BaseException) -> None:
            emit({"event": "error", "url": url, "detail": str(error)})

        scheduler = JobScheduler(
            providers,
            on_progress=on_progress,
            on_result=on_result,
            on_error=on_error,
        )
        summary = await scheduler.process_queue([Job(page=r) for r in records], context)
        return {
            "total": summary.total,
            "succeeded": summary.succeeded,
            "failed": summary.failed,
        }

    return sse_response(run)
