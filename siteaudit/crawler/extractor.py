"""HTML metadata and readable-content extraction."""

from __future__ import annotations

import re

import trafilatura
from bs4 import BeautifulSoup

_CONTENT_CONTAINERS = "main, article, [role=main], .main-content, #main, #content"
_NOISE_TAGS = "script, style, nav, header, footer, aside, .sidebar, form, button, input"
_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _extract_title(soup: BeautifulSoup) -> str:
    """Return the text of the first ``<title>`` tag, or empty string."""
    tag = soup.find("title")
    if tag is None:
        return ""
    return _WHITESPACE_RE.sub(" ", tag.get_text()).strip()


def _extract_description(soup: BeautifulSoup) -> str:
    """Return the ``content`` of ``<meta name="description">``, or empty string."""
    for tag in soup.find_all("meta"):
        name = (tag.get("name") or "").strip().lower()
        if name == "description":
            return _WHITESPACE_RE.sub(" ", tag.get("content") or "").strip()
    return ""


def _bs4_fallback(html: str) -> str:
    """Readable text from the main content container with chrome stripped."""
    soup = BeautifulSoup(html, "html.parser")
    container = soup.select_one(_CONTENT_CONTAINERS) or soup.body or soup
    for tag in container.select(_NOISE_TAGS):
        tag.decompose()
    return _WHITESPACE_RE.sub(" ", container.get_text(separator=" ")).strip()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_page(html: str, url: str = "", max_chars: int = 25000) -> tuple[str, str, str]:
    """Extract ``(title, description, content)`` from an HTML document.

    Content comes from ``trafilatura`` when it finds an article body and
    falls back to a BeautifulSoup heuristic otherwise.  It is whitespace
    collapsed and truncated to *max_chars*.
    """
    soup = BeautifulSoup(html, "html.parser")
    title = _extract_title(soup)
    description = _extract_description(soup)

    text: str | None = trafilatura.extract(
        html,
        include_links=False,
        include_images=False,
        include_tables=True,
        no_fallback=False,
        url=url or None,
    )
    if text:
        text = _WHITESPACE_RE.sub(" ", text).strip()
    else:
        text = _bs4_fallback(html)

    return title, description, text[:max_chars]
