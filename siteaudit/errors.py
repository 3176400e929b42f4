"""Exception hierarchy shared by the crawler, the audit scheduler and the CMS sync.

Discovery errors are terminal for a crawl and carry a user-actionable
message.  Everything else is either recovered locally (retries, null slots,
fallback suggestions) or reported per job.
"""

from __future__ import annotations


class SiteAuditError(Exception):
    """Base class for every error raised by this package."""


# ---------------------------------------------------------------------------
# Crawl stage failures
# ---------------------------------------------------------------------------

class DiscoveryError(SiteAuditError):
    """A whole crawl stage produced nothing usable."""


class NoSitemapFoundError(DiscoveryError):
    """Neither robots.txt, the homepage nor the conventional paths exposed a sitemap."""


class SitemapFetchError(DiscoveryError):
    """A sitemap location could not be downloaded or is not valid XML."""


class EmptySitemapError(DiscoveryError):
    """Sitemaps were found but listed zero page URLs."""


class SitemapCycleError(DiscoveryError):
    """A sitemap index references itself or one of its ancestors."""


class NoValidPagesError(DiscoveryError):
    """URLs were discovered but none of them look like crawlable HTML pages."""


class NoPageDataError(DiscoveryError):
    """Every validated page failed to download."""


# ---------------------------------------------------------------------------
# AI generation
# ---------------------------------------------------------------------------

class RateLimitError(SiteAuditError):
    """The provider signalled overload; the worker must cool down."""


class GenerationError(SiteAuditError):
    """The provider answered, but not with JSON matching the requested schema."""


class ProviderConfigError(SiteAuditError):
    """A credential entry names an unknown provider or is malformed."""


class IllegalTransitionError(SiteAuditError):
    """A worker status change outside the allowed state machine."""


# ---------------------------------------------------------------------------
# CMS updates
# ---------------------------------------------------------------------------

class UpdateError(SiteAuditError):
    """Applying a title/description update to the CMS failed."""


class AuthorizationError(UpdateError):
    """The CMS rejected the supplied credentials."""
