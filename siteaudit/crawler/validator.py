"""Cheap check-before-fetch classification of candidate URLs."""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


async def validate_url(client: httpx.AsyncClient, url: str) -> str | None:
    """Return *url* if it should be fetched as an HTML page, else ``None``.

    Issues a ``HEAD`` request so no body is downloaded.  Only a successful
    response that declares a non-HTML content type is rejected; every
    ambiguous signal (missing content type, error status such as ``405`` for
    servers that refuse ``HEAD``, network errors, timeouts) lets the URL
    through so the full fetch can decide.
    """
    try:
        response = await client.head(url)
    except httpx.HTTPError as exc:
        logger.warning("[validate] HEAD %s failed, optimistically including: %r", url, exc)
        return url

    if not response.is_success:
        logger.warning(
            "[validate] HEAD %s returned %d, optimistically including", url, response.status_code
        )
        return url

    content_type = response.headers.get("content-type", "").lower()
    if not content_type or "html" in content_type:
        return url

    logger.info("[validate] Skipping non-HTML URL %s (Content-Type: %s)", url, content_type)
    return None
