"""Apply a batch of title/description updates with bounded concurrency."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Optional, Sequence

from siteaudit.cms.wordpress import ContentUpdater
from siteaudit.config import settings
from siteaudit.crawler.pool import ProgressCallback, run_pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetaUpdate:
    url: str
    title: str
    description: str


@dataclass(frozen=True)
class SyncOutcome:
    url: str
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


async def apply_updates(
    updater: ContentUpdater,
    updates: Sequence[MetaUpdate],
    concurrency: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> list[SyncOutcome]:
    """Apply every update; one outcome per input, in input order."""
    limit = concurrency or settings.sync_concurrency

    async def _apply(update: MetaUpdate) -> SyncOutcome:
        try:
            await updater.apply_update(update.url, update.title, update.description)
        except Exception as exc:  # noqa: BLE001
            logger.warning("[sync] %s: %s", update.url, exc)
            return SyncOutcome(url=update.url, ok=False, error=str(exc))
        return SyncOutcome(url=update.url, ok=True)

    outcomes = await run_pool(list(updates), _apply, limit, on_progress)
    synced = sum(1 for o in outcomes if o is not None and o.ok)
    logger.info("[sync] %d/%d update(s) applied", synced, len(outcomes))
    return [o for o in outcomes if o is not None]
