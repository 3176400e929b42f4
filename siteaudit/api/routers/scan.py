"""Quick-scan endpoint: programmatic title/description checks, no AI.

Routes
------
POST /scan    Body: {"pages": [{"url": ..., "title": ..., "description": ...}]}
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from siteaudit.api.schemas import PageIn
from siteaudit.audit.quick_scan import quick_scan

router = APIRouter()


class ScanRequest(BaseModel):
    pages: list[PageIn]


@router.post("")
def scan(body: ScanRequest) -> dict[str, Any]:
    scanned = quick_scan(p.to_record() for p in body.pages)
    return {
        "pages": [s.to_dict() for s in scanned],
        "with_issues": sum(1 for s in scanned if s.issues),
    }
