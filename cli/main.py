"""SiteAudit CLI: entry-point for every pipeline stage.

Usage:
    siteaudit --help

Each command maps to one stage and exchanges JSON files with the next:
    crawl  → sitemap discovery + fetch, writes a page inventory
    scan   → programmatic title/description checks (no AI)
    audit  → AI analysis and rewrite suggestions across provider keys
    sync   → push chosen suggestions to WordPress
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from siteaudit.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
import logging
from typing import Any, Optional

import typer

from siteaudit.config import settings
from siteaudit.crawler.models import PageRecord
from siteaudit.errors import SiteAuditError

app = typer.Typer(
    name="siteaudit",
    help="Sitemap crawler and AI meta-copy auditor.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# JSON file helpers
# ---------------------------------------------------------------------------

def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        typer.echo(f"❌ Could not read {path}: {exc}")
        raise typer.Exit(code=1)


def _write_json(path: Path, data: Any) -> None:
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")


def _load_pages(path: Path) -> list[PageRecord]:
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("pages", [])
    return [PageRecord.from_dict(item) for item in data]


def _progress_printer(label: str):
    def on_progress(completed: int, total: int) -> None:
        if total and completed == total:
            typer.echo(f"[{label}] {completed}/{total} done")
    return on_progress


# ---------------------------------------------------------------------------
# crawl
# ---------------------------------------------------------------------------
@app.command("crawl")
def crawl(
    url: str = typer.Argument(..., help="Site root, e.g. https://example.com"),
    sitemap: Optional[str] = typer.Option(None, "--sitemap", help="Explicit sitemap URL; skips discovery."),
    output: Path = typer.Option(Path("pages.json"), "--output", "-o", help="Where to write the page inventory."),
) -> None:
    """Discover the site's sitemaps, then fetch every HTML page they list."""
    from siteaudit.crawler import crawl_site

    try:
        pages = asyncio.run(
            crawl_site(
                url,
                sitemap_url=sitemap,
                on_progress=_progress_printer("crawl"),
                on_status=lambda message: typer.echo(f"[crawl] {message}"),
            )
        )
    except SiteAuditError as exc:
        typer.echo(f"❌ {type(exc).__name__}: {exc}")
        raise typer.Exit(code=1)

    _write_json(output, [p.to_dict() for p in pages])
    typer.echo(f"✅ {len(pages)} page(s) written to {output}")


# ---------------------------------------------------------------------------
# scan
# ---------------------------------------------------------------------------
@app.command("scan")
def scan(
    input_path: Path = typer.Option(Path("pages.json"), "--input", "-i", help="Page inventory from `crawl`."),
) -> None:
    """Flag missing, overlong, short and duplicate titles and descriptions."""
    from siteaudit.audit.quick_scan import quick_scan

    scanned = quick_scan(_load_pages(input_path))
    flagged = [s for s in scanned if s.issues]
    for item in flagged:
        typer.echo(f"  {item.page.url}")
        typer.echo(f"      {', '.join(item.issues)}")
    typer.echo(f"[scan] {len(flagged)} of {len(scanned)} page(s) have issues.")


# ---------------------------------------------------------------------------
# audit
# ---------------------------------------------------------------------------
@app.command("audit")
def audit(
    input_path: Path = typer.Option(Path("pages.json"), "--input", "-i", help="Page inventory from `crawl`."),
    output: Path = typer.Option(Path("audit.json"), "--output", "-o", help="Where to write the results."),
    credentials: Optional[str] = typer.Option(
        None, "--credentials", help="provider:key[:model],... (defaults to AI_CREDENTIALS)."
    ),
    location: Optional[str] = typer.Option(None, "--location", help="Target market for geo-aware copy."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Only audit the first N pages."),
) -> None:
    """Analyze each page and generate rewrite suggestions, spreading work over every key."""
    from siteaudit.audit.models import AuditResult, Job, SiteContext
    from siteaudit.audit.providers import build_provider, parse_credentials
    from siteaudit.audit.scheduler import JobScheduler

    try:
        configs = parse_credentials(credentials or settings.ai_credentials)
    except SiteAuditError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=1)
    if not configs:
        typer.echo("❌ No AI credentials. Pass --credentials or set AI_CREDENTIALS.")
        raise typer.Exit(code=1)

    pages = _load_pages(input_path)
    targets = pages[:limit] if limit else pages
    results: list[dict] = []
    failures: list[dict] = []

    def on_result(result: AuditResult) -> None:
        results.append(result.to_dict())
        typer.echo(f"  ✓ {result.url}  grade {result.analysis.grade}")

    def on_error(url: str, error: BaseException) -> None:
        failures.append({"url": url, "error": str(error)})
        typer.echo(f"  ✗ {url}  {error}")

    scheduler = JobScheduler(
        [build_provider(c) for c in configs],
        on_progress=_progress_printer("audit"),
        on_result=on_result,
        on_error=on_error,
    )
    context = SiteContext(pages=pages, target_location=location)

    typer.echo(f"[audit] {len(targets)} page(s) across {len(configs)} worker(s) …")
    try:
        summary = asyncio.run(scheduler.process_queue([Job(page=p) for p in targets], context))
    except ValueError as exc:
        typer.echo(f"❌ {exc}")
        raise typer.Exit(code=1)

    _write_json(output, {"results": results, "errors": failures})
    typer.echo(
        f"✅ {summary.succeeded} succeeded, {summary.failed} failed "
        f"({summary.cooldowns} cooldowns, {summary.retries} retries). Results in {output}"
    )


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------
@app.command("sync")
def sync(
    input_path: Path = typer.Option(Path("audit.json"), "--input", "-i", help="Results file from `audit`."),
    choice: int = typer.Option(0, "--choice", help="Index of the suggestion to apply for each page."),
    site_url: Optional[str] = typer.Option(None, "--site-url", help="WordPress site (defaults to WP_SITE_URL)."),
    username: Optional[str] = typer.Option(None, "--username", help="Defaults to WP_USERNAME."),
    app_password: Optional[str] = typer.Option(None, "--app-password", help="Defaults to WP_APP_PASSWORD."),
    skip_fallback: bool = typer.Option(True, help="Skip pages whose only suggestion is the fallback."),
) -> None:
    """Write the chosen suggestion of every audited page to WordPress."""
    from siteaudit.cms.sync import MetaUpdate, apply_updates
    from siteaudit.cms.wordpress import WordPressCredentials, WordPressUpdater

    creds = WordPressCredentials(
        site_url=site_url or settings.wp_site_url,
        username=username or settings.wp_username,
        app_password=app_password or settings.wp_app_password,
    )
    if not (creds.site_url and creds.username and creds.app_password):
        typer.echo("❌ WordPress site URL, username and application password are required.")
        raise typer.Exit(code=1)

    data = _read_json(input_path)
    updates: list[MetaUpdate] = []
    for item in data.get("results", []) if isinstance(data, dict) else data:
        suggestions = item.get("suggestions") or []
        if choice >= len(suggestions):
            typer.echo(f"  – {item['url']}: no suggestion #{choice}, skipped")
            continue
        picked = suggestions[choice]
        if skip_fallback and picked.get("is_fallback"):
            typer.echo(f"  – {item['url']}: fallback suggestion, skipped")
            continue
        updates.append(MetaUpdate(item["url"], picked["title"], picked["description"]))

    if not updates:
        typer.echo("[sync] Nothing to update.")
        return

    async def _run():
        async with WordPressUpdater(creds) as updater:
            return await apply_updates(updater, updates)

    outcomes = asyncio.run(_run())
    for outcome in outcomes:
        mark = "✓" if outcome.ok else "✗"
        typer.echo(f"  {mark} {outcome.url}" + ("" if outcome.ok else f"  {outcome.error}"))
    failed = sum(1 for o in outcomes if not o.ok)
    typer.echo(f"[sync] {len(outcomes) - failed}/{len(outcomes)} page(s) updated.")
    if failed:
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
