"""Page fetcher with retry and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import random

import httpx

from siteaudit.config import settings
from siteaudit.crawler.extractor import extract_page
from siteaudit.crawler.models import PageRecord

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in _RETRYABLE_STATUS
    return False


def backoff_delay(attempt: int, base: float | None = None, jitter: float | None = None) -> float:
    """Delay before retry number *attempt* (1-based): ``base * 2**(attempt-1) + U(0, jitter)``."""
    base = settings.fetch_backoff_base if base is None else base
    jitter = settings.fetch_backoff_jitter if jitter is None else jitter
    return base * (2 ** (attempt - 1)) + random.uniform(0, jitter)


async def fetch_page(
    client: httpx.AsyncClient,
    url: str,
    retries: int | None = None,
) -> PageRecord:
    """Download *url* and return its :class:`PageRecord`.

    Timeouts, connection failures and retryable statuses (429, 5xx) are
    retried up to *retries* times (``settings.fetch_max_retries`` by default).
    Other HTTP errors fail immediately.

    Raises:
        httpx.HTTPError: The last underlying error once retries are exhausted.
        ValueError: If the server returned an empty body.
    """
    retries = settings.fetch_max_retries if retries is None else retries

    for attempt in range(1, retries + 2):
        try:
            response = await client.get(url)
            response.raise_for_status()
            break
        except httpx.HTTPError as exc:
            if attempt > retries or not _is_transient(exc):
                logger.error("[fetch] %s failed after %d attempt(s): %r", url, attempt, exc)
                raise
            delay = backoff_delay(attempt)
            logger.warning(
                "[fetch] %s failed (%r); retrying in %.2fs (attempt %d/%d)",
                url, exc, delay, attempt, retries,
            )
            await asyncio.sleep(delay)

    html = response.text
    if not html.strip():
        raise ValueError(f"Empty response for {url}")

    title, description, content = extract_page(html, url, settings.max_content_chars)
    return PageRecord(url=url, title=title, description=description, content=content)
