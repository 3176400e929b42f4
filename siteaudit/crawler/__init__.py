"""Crawl engine: sitemap discovery, validation and page fetching."""

from siteaudit.crawler.engine import crawl_site, crawl_urls
from siteaudit.crawler.models import PageRecord
from siteaudit.crawler.pool import run_pool

__all__ = ["crawl_site", "crawl_urls", "PageRecord", "run_pool"]
