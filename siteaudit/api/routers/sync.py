"""WordPress sync endpoint.

Routes
------
POST /sync    Body: {"updates": [{"url", "title", "description"}],
                     "site_url": ..., "username": ..., "app_password": ...}

Credentials default to the ``WP_*`` environment settings.
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from siteaudit.cms.sync import MetaUpdate, apply_updates
from siteaudit.cms.wordpress import WordPressCredentials, WordPressUpdater
from siteaudit.config import settings

router = APIRouter()


class UpdateIn(BaseModel):
    url: str
    title: str
    description: str


class SyncRequest(BaseModel):
    updates: list[UpdateIn]
    site_url: Optional[str] = None
    username: Optional[str] = None
    app_password: Optional[str] = None


@router.post("")
async def sync(body: SyncRequest) -> dict[str, Any]:
    credentials = WordPressCredentials(
        site_url=body.site_url or settings.wp_site_url,
        username=body.username or settings.wp_username,
        app_password=body.app_password or settings.wp_app_password,
    )
    if not (credentials.site_url and credentials.username and credentials.app_password):
        raise HTTPException(status_code=400, detail="WordPress site URL, username and application password are required.")

    updates = [MetaUpdate(u.url, u.title, u.description) for u in body.updates]
    async with WordPressUpdater(credentials) as updater:
        outcomes = await apply_updates(updater, updates)
    return {
        "results": [o.to_dict() for o in outcomes],
        "succeeded": sum(1 for o in outcomes if o.ok),
    }
