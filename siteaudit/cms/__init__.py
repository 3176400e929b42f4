"""Push approved titles and descriptions back to a content-management system."""

from siteaudit.cms.sync import MetaUpdate, SyncOutcome, apply_updates
from siteaudit.cms.wordpress import ContentUpdater, WordPressCredentials, WordPressUpdater

__all__ = [
    "ContentUpdater",
    "MetaUpdate",
    "SyncOutcome",
    "WordPressCredentials",
    "WordPressUpdater",
    "apply_updates",
]
