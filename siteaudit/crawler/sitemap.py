"""Sitemap discovery and recursive expansion.

Discovery order
---------------
1. ``robots.txt``: every ``Sitemap:`` directive (case-insensitive).
2. Homepage: ``<link rel="sitemap" href="...">`` tags.
3. Conventional paths: probed concurrently; only XML responses count.

The first step that yields anything wins.  Each discovered location is then
fetched and parsed; sitemap *index* documents are expanded recursively with a
visited set so that an index pointing back at itself (or at an ancestor)
fails with :class:`~siteaudit.errors.SitemapCycleError` instead of recursing
forever.
"""

from __future__ import annotations

import asyncio
import gzip
import logging
import re
import xml.etree.ElementTree as ET
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from siteaudit.errors import (
    DiscoveryError,
    EmptySitemapError,
    NoSitemapFoundError,
    SitemapCycleError,
    SitemapFetchError,
)

logger = logging.getLogger(__name__)

COMMON_SITEMAP_PATHS = (
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/post-sitemap.xml",
    "/page-sitemap.xml",
)

_ROBOTS_SITEMAP_RE = re.compile(r"^\s*sitemap\s*:\s*(\S+)", re.IGNORECASE | re.MULTILINE)
_GZIP_MAGIC = b"\x1f\x8b"


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


# ---------------------------------------------------------------------------
# Parsers (pure functions)
# ---------------------------------------------------------------------------

def parse_robots_sitemaps(robots_txt: str, base_url: str = "") -> list[str]:
    """Return every ``Sitemap:`` value in *robots_txt*, resolved against *base_url*."""
    found = [m.group(1).strip() for m in _ROBOTS_SITEMAP_RE.finditer(robots_txt)]
    return _dedupe([urljoin(base_url, u) if base_url else u for u in found if u])


def parse_homepage_sitemap_links(html: str, base_url: str) -> list[str]:
    """Return absolute hrefs of ``<link rel="sitemap">`` tags in *html*."""
    soup = BeautifulSoup(html, "html.parser")
    links: list[str] = []
    for tag in soup.find_all("link", href=True):
        rel = tag.get("rel") or []
        if isinstance(rel, str):
            rel = rel.split()
        if any(r.lower() == "sitemap" for r in rel):
            links.append(urljoin(base_url, tag["href"].strip()))
    return _dedupe(links)


def parse_sitemap(xml: str | bytes, sitemap_url: str = "") -> tuple[list[str], list[str]]:
    """Parse a sitemap document.

    Namespaces are ignored, so both schema-conformant and bare documents are
    accepted.

    Returns:
        ``(page_urls, child_sitemap_urls)``.  A ``<urlset>`` yields only page
        URLs; a ``<sitemapindex>`` yields only child sitemaps.

    Raises:
        SitemapFetchError: If *xml* is not well-formed.
    """
    try:
        root = ET.fromstring(xml)
    except ET.ParseError as exc:
        raise SitemapFetchError(
            f"The XML from sitemap {sitemap_url!r} is malformed and could not be parsed: {exc}"
        ) from exc

    def _locs(path: str) -> list[str]:
        return [el.text.strip() for el in root.findall(path) if el.text and el.text.strip()]

    children = _locs("{*}sitemap/{*}loc")
    pages = _locs("{*}url/{*}loc")
    return _dedupe(pages), _dedupe(children)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

async def _sitemaps_from_robots(client: httpx.AsyncClient, root_url: str) -> list[str]:
    robots_url = urljoin(root_url, "/robots.txt")
    logger.info("[sitemap] Checking %s", robots_url)
    try:
        response = await client.get(robots_url)
    except httpx.HTTPError as exc:
        logger.warning("[sitemap] Could not fetch robots.txt: %r", exc)
        return []
    if not response.is_success:
        return []
    return parse_robots_sitemaps(response.text, root_url)


async def _sitemaps_from_homepage(client: httpx.AsyncClient, root_url: str) -> list[str]:
    logger.info("[sitemap] Checking homepage for <link rel=sitemap>: %s", root_url)
    try:
        response = await client.get(root_url, headers={"Accept": "text/html"})
    except httpx.HTTPError as exc:
        logger.warning("[sitemap] Could not fetch homepage: %r", exc)
        return []
    if not response.is_success:
        return []
    return parse_homepage_sitemap_links(response.text, str(response.url))


async def _probe_common_path(client: httpx.AsyncClient, root_url: str, path: str) -> str | None:
    candidate = urljoin(root_url, path)
    try:
        response = await client.get(candidate)
    except httpx.HTTPError:
        return None
    content_type = response.headers.get("content-type", "").lower()
    if response.is_success and "xml" in content_type:
        logger.info("[sitemap] Found sitemap at common path: %s", candidate)
        return candidate
    return None


async def discover_sitemaps(client: httpx.AsyncClient, root_url: str) -> list[str]:
    """Return sitemap locations for *root_url*, or ``[]`` when none exist."""
    found = await _sitemaps_from_robots(client, root_url)
    if found:
        logger.info("[sitemap] robots.txt lists %d sitemap(s)", len(found))
        return found

    found = await _sitemaps_from_homepage(client, root_url)
    if found:
        logger.info("[sitemap] Homepage links %d sitemap(s)", len(found))
        return found

    logger.info("[sitemap] Nothing declared; probing common paths")
    probes = await asyncio.gather(
        *(_probe_common_path(client, root_url, path) for path in COMMON_SITEMAP_PATHS)
    )
    return [p for p in probes if p]


# ---------------------------------------------------------------------------
# Expansion
# ---------------------------------------------------------------------------

async def _fetch_sitemap(client: httpx.AsyncClient, sitemap_url: str) -> bytes:
    try:
        response = await client.get(sitemap_url)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise SitemapFetchError(f"Failed to fetch sitemap {sitemap_url!r}: {exc}") from exc

    body = response.content
    if body[:2] == _GZIP_MAGIC:
        try:
            body = gzip.decompress(body)
        except (OSError, EOFError) as exc:
            raise SitemapFetchError(f"Sitemap {sitemap_url!r} is not valid gzip: {exc}") from exc
    if not body.strip():
        raise SitemapFetchError(f"Sitemap {sitemap_url!r} is empty.")
    return body


async def _expand(
    client: httpx.AsyncClient,
    sitemap_url: str,
    ancestors: tuple[str, ...],
    seen: set[str],
) -> list[str]:
    if sitemap_url in ancestors:
        chain = " -> ".join(ancestors + (sitemap_url,))
        raise SitemapCycleError(f"Sitemap index cycle detected: {chain}")
    if sitemap_url in seen:
        return []
    seen.add(sitemap_url)

    body = await _fetch_sitemap(client, sitemap_url)
    pages, children = parse_sitemap(body, sitemap_url)
    if not children:
        if not pages:
            logger.warning("[sitemap] No <loc> entries in %s", sitemap_url)
        return pages

    logger.info(
        "[sitemap] Index %s references %d nested sitemap(s)", sitemap_url, len(children)
    )
    path = ancestors + (sitemap_url,)
    outcomes = await asyncio.gather(
        *(_expand(client, child, path, seen) for child in children),
        return_exceptions=True,
    )

    urls = list(pages)
    for child, outcome in zip(children, outcomes):
        if isinstance(outcome, SitemapFetchError):
            logger.warning("[sitemap] Skipping nested sitemap %s: %s", child, outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            urls.extend(outcome)
    return urls


async def expand_sitemap(client: httpx.AsyncClient, sitemap_url: str) -> list[str]:
    """Fetch *sitemap_url* and return every page URL it (transitively) lists."""
    return _dedupe(await _expand(client, sitemap_url, (), set()))


async def resolve_sitemap_urls(
    client: httpx.AsyncClient,
    root_url: str,
    sitemap_url: str | None = None,
) -> list[str]:
    """Return the deduplicated page URL set of a site.

    Args:
        client: Shared HTTP client.
        root_url: Site root, used for discovery.
        sitemap_url: Explicit sitemap location; skips discovery when given.

    Raises:
        NoSitemapFoundError: Discovery found no sitemap location.
        EmptySitemapError: Sitemaps were processed but listed no URLs.
        SitemapFetchError | SitemapCycleError: Every location failed; the
            first failure is raised.
    """
    if sitemap_url:
        locations = [sitemap_url]
    else:
        locations = await discover_sitemaps(client, root_url)
        if not locations:
            raise NoSitemapFoundError(
                f"No sitemap found for {root_url}: robots.txt, the homepage and the "
                "common sitemap paths were all checked. Provide a sitemap URL explicitly."
            )

    seen: set[str] = set()
    outcomes = await asyncio.gather(
        *(_expand(client, loc, (), seen) for loc in locations),
        return_exceptions=True,
    )

    urls: list[str] = []
    failures: list[DiscoveryError] = []
    for location, outcome in zip(locations, outcomes):
        if isinstance(outcome, DiscoveryError):
            logger.warning("[sitemap] Sitemap %s could not be processed: %s", location, outcome)
            failures.append(outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            urls.extend(outcome)

    if not urls and failures:
        raise failures[0]

    unique = _dedupe(urls)
    if not unique:
        raise EmptySitemapError(
            f"Found {len(locations)} sitemap(s) for {root_url}, but they contain no page URLs."
        )
    logger.info("[sitemap] Resolved %d unique URL(s) from %d sitemap(s)", len(unique), len(locations))
    return unique
