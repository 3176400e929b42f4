"""WordPress REST API updater.

A public page URL is mapped to its post by slug (``/wp-json/wp/v2/posts``
first, then ``/pages``), and the new copy is written to the meta keys of the
three common SEO plugins at once.  WordPress ignores keys for plugins that
are not installed, so the same request works for Yoast, AIOSEO and Rank Math.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import httpx

from siteaudit.config import settings
from siteaudit.errors import AuthorizationError, UpdateError

logger = logging.getLogger(__name__)

_POST_TYPES = ("posts", "pages")


class ContentUpdater(ABC):
    """Anything that can apply a new title/description to a live page."""

    @abstractmethod
    async def apply_update(self, url: str, new_title: str, new_description: str) -> None:
        """Apply the update.  Raises :class:`UpdateError` on failure."""


@dataclass(frozen=True)
class WordPressCredentials:
    site_url: str
    username: str
    app_password: str

    @classmethod
    def from_settings(cls) -> "WordPressCredentials":
        if not (settings.wp_site_url and settings.wp_username and settings.wp_app_password):
            raise UpdateError("WP_SITE_URL, WP_USERNAME and WP_APP_PASSWORD must all be set.")
        return cls(settings.wp_site_url, settings.wp_username, settings.wp_app_password)

    @property
    def api_base(self) -> str:
        return f"{self.site_url.rstrip('/')}/wp-json/wp/v2"


def seo_meta_payload(title: str, description: str) -> dict:
    return {
        "meta": {
            "_yoast_wpseo_title": title,
            "_yoast_wpseo_metadesc": description,
            "_aioseo_title": title,
            "_aioseo_description": description,
            "rank_math_title": title,
            "rank_math_description": description,
        }
    }


def slug_from_url(url: str) -> Optional[str]:
    segments = [s for s in urlparse(url).path.split("/") if s]
    return segments[-1] if segments else None


class WordPressUpdater(ContentUpdater):
    """Updates SEO meta through the WordPress REST API with an application password."""

    def __init__(
        self,
        credentials: WordPressCredentials,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.credentials = credentials
        self._client = client
        self._auth = httpx.BasicAuth(credentials.username, credentials.app_password)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.wp_timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> "WordPressUpdater":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @staticmethod
    def _check_auth(resp: httpx.Response) -> None:
        if resp.status_code in (401, 403):
            raise AuthorizationError(
                "Authorization failed. Check the username and application password."
            )

    async def find_post(self, url: str) -> tuple[str, int]:
        """Return ``(post_type, post_id)`` for the page at *url*.

        Raises:
            UpdateError: The URL has no slug (homepage) or no post matches it.
            AuthorizationError: The credentials were rejected.
        """
        slug = slug_from_url(url)
        if not slug:
            raise UpdateError(
                f"Could not determine a slug from {url}; the homepage cannot be updated this way."
            )

        client = self._http()
        for post_type in _POST_TYPES:
            try:
                resp = await client.get(
                    f"{self.credentials.api_base}/{post_type}",
                    params={"slug": slug},
                    auth=self._auth,
                )
            except httpx.HTTPError as exc:
                logger.warning("[wordpress] %s lookup for %r failed: %s", post_type, slug, exc)
                continue
            self._check_auth(resp)
            if not resp.is_success:
                logger.info("[wordpress] %s lookup for %r returned %d", post_type, slug, resp.status_code)
                continue
            try:
                data = resp.json()
            except ValueError:
                continue
            if isinstance(data, list) and data:
                post_id = int(data[0]["id"])
                logger.debug("[wordpress] %r is %s #%d", slug, post_type, post_id)
                return post_type, post_id

        raise UpdateError(
            f'Could not find a post or page with the slug "{slug}". '
            "Check permissions and make sure the page is public."
        )

    async def apply_update(self, url: str, new_title: str, new_description: str) -> None:
        post_type, post_id = await self.find_post(url)
        endpoint = f"{self.credentials.api_base}/{post_type}/{post_id}"
        try:
            resp = await self._http().post(
                endpoint,
                json=seo_meta_payload(new_title, new_description),
                auth=self._auth,
            )
        except httpx.HTTPError as exc:
            raise UpdateError(f"Request to {endpoint} failed: {exc}") from exc

        self._check_auth(resp)
        if not resp.is_success:
            raise UpdateError(
                f"WordPress API returned an error (status {resp.status_code}). "
                "You may not have permission to edit this post."
            )
        logger.info("[wordpress] updated %s #%d (%s)", post_type, post_id, url)
