"""FastAPI application factory.

Routers
-------
    /crawl: sitemap discovery + page fetch (SSE streaming)
    /scan: programmatic quick scan of a page inventory
    /audit: AI analysis and rewrite suggestions (SSE streaming)
    /sync: push approved copy to WordPress
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from siteaudit.api.routers import audit as audit_router
from siteaudit.api.routers import crawl as crawl_router
from siteaudit.api.routers import scan as scan_router
from siteaudit.api.routers import sync as sync_router


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="SiteAudit API",
        description=(
            "Crawl a site from its sitemaps, flag title and description "
            "problems, generate AI rewrites across several provider keys, "
            "and push approved copy back to WordPress."
        ),
        version="0.3.0",
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(crawl_router.router, prefix="/crawl", tags=["crawl"])
    app.include_router(scan_router.router, prefix="/scan", tags=["scan"])
    app.include_router(audit_router.router, prefix="/audit", tags=["audit"])
    app.include_router(sync_router.router, prefix="/sync", tags=["sync"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn siteaudit.api.app:app --reload
app = create_app()
