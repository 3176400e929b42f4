"""Crawl orchestration: sitemap resolution → validation → fetch.

``crawl_site`` is the single entry point used by the CLI and the API.  It
owns an ``httpx.AsyncClient`` for the duration of the crawl unless the
caller passes one in.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import httpx

from siteaudit.config import settings
from siteaudit.crawler.fetcher import fetch_page
from siteaudit.crawler.models import PageRecord
from siteaudit.crawler.pool import ProgressCallback, run_pool
from siteaudit.crawler.sitemap import resolve_sitemap_urls
from siteaudit.crawler.validator import validate_url
from siteaudit.errors import EmptySitemapError, NoPageDataError, NoValidPagesError

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


def _noop_status(message: str) -> None:
    pass


@asynccontextmanager
async def _client_scope(client: Optional[httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    if client is not None:
        yield client
        return
    limits = httpx.Limits(max_connections=max(settings.validation_concurrency, settings.fetch_concurrency))
    async with httpx.AsyncClient(
        headers=settings.default_headers,
        timeout=settings.request_timeout,
        follow_redirects=True,
        limits=limits,
    ) as owned:
        yield owned


async def crawl_urls(
    urls: list[str],
    on_progress: Optional[ProgressCallback] = None,
    on_status: Optional[StatusCallback] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> list[PageRecord]:
    """Validate and fetch an explicit URL list.

    Raises:
        EmptySitemapError: *urls* is empty.
        NoValidPagesError: No URL passed validation.
        NoPageDataError: Every validated URL failed to download.
    """
    status = on_status or _noop_status
    unique = list(dict.fromkeys(u.strip() for u in urls if u and u.strip()))
    if not unique:
        raise EmptySitemapError("The list of URLs is empty.")

    async with _client_scope(client) as http:
        # Stage A: lightweight validation
        status(f"Found {len(unique)} unique URLs. Validating which are HTML pages...")
        if on_progress:
            on_progress(0, len(unique))
        validated = await run_pool(
            unique,
            lambda u: validate_url(http, u),
            settings.validation_concurrency,
            on_progress,
        )
        page_urls = [u for u in validated if u is not None]
        if not page_urls:
            raise NoValidPagesError(
                f"Found {len(unique)} URLs, but none appear to be crawlable HTML pages."
            )
        logger.info("[crawl] %d of %d URL(s) passed validation", len(page_urls), len(unique))

        # Stage B: full fetch
        status(f"Extracting SEO data from {len(page_urls)} validated pages...")
        if on_progress:
            on_progress(0, len(page_urls))
        fetched = await run_pool(
            page_urls,
            lambda u: fetch_page(http, u),
            settings.fetch_concurrency,
            on_progress,
        )

    pages = [p for p in fetched if p is not None]
    if not pages:
        raise NoPageDataError(
            f"Crawled {len(page_urls)} validated URLs but could not retrieve data from any "
            "of them. The site may be blocking the crawler."
        )
    logger.info("[crawl] Fetched %d page(s); %d failed", len(pages), len(page_urls) - len(pages))
    status(f"Processing complete: {len(pages)} page(s) fetched.")
    return pages


async def crawl_site(
    root_url: str,
    sitemap_url: Optional[str] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_status: Optional[StatusCallback] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> list[PageRecord]:
    """Crawl *root_url* via its sitemap(s) and return the page inventory.

    Args:
        root_url: Site root, e.g. ``https://example.com``.
        sitemap_url: Explicit sitemap; skips discovery.
        on_progress: ``(completed, total)`` per stage; reset to ``(0, n)``
            when the fetch stage starts.
        on_status: Human-readable stage messages.
        client: Optional shared client; one is created otherwise.

    Raises:
        NoSitemapFoundError, EmptySitemapError, SitemapFetchError,
        SitemapCycleError, NoValidPagesError, NoPageDataError.
    """
    status = on_status or _noop_status
    logger.info("[crawl] Starting crawl for %s", root_url)

    async with _client_scope(client) as http:
        if sitemap_url:
            status(f"Processing provided sitemap: {sitemap_url}")
        else:
            status("Starting automatic sitemap discovery...")
        urls = await resolve_sitemap_urls(http, root_url, sitemap_url)
        return await crawl_urls(urls, on_progress, on_status, client=http)
