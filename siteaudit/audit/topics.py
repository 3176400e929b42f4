"""Topic index used to assemble cross-page context for each job."""

from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Mapping

from siteaudit.audit.models import DEFAULT_TOPIC, ClusterPage, TopicLabel
from siteaudit.crawler.models import PageRecord


class TopicIndex:
    """Map of topic label to the pages sharing it.

    Built once per scheduling run and read-only afterwards, so looking up a
    page's cluster is a dict access plus a filter over that one cluster.
    """

    def __init__(self, clusters: Mapping[str, list[ClusterPage]] | None = None) -> None:
        self._clusters: dict[str, list[ClusterPage]] = dict(clusters or {})

    @classmethod
    def build(
        cls,
        pages: Iterable[PageRecord],
        topics: Mapping[str, TopicLabel] | None = None,
    ) -> "TopicIndex":
        topics = topics or {}
        clusters: dict[str, list[ClusterPage]] = defaultdict(list)
        for page in pages:
            label = topics.get(page.url, TopicLabel())
            clusters[label.topic or DEFAULT_TOPIC].append(
                ClusterPage(url=page.url, title=page.title, intent=label.intent)
            )
        return cls(clusters)

    def __len__(self) -> int:
        return len(self._clusters)

    def topics(self) -> list[str]:
        return list(self._clusters)

    def cluster(self, topic: str) -> list[ClusterPage]:
        return list(self._clusters.get(topic or DEFAULT_TOPIC, []))

    def siblings(self, topic: str | None, exclude_url: str, limit: int) -> list[ClusterPage]:
        """Up to *limit* pages sharing *topic*, excluding *exclude_url* itself."""
        members = self._clusters.get(topic or DEFAULT_TOPIC, [])
        result: list[ClusterPage] = []
        for member in members:
            if member.url == exclude_url:
                continue
            result.append(member)
            if len(result) >= limit:
                break
        return result
