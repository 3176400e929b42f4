"""Tests for siteaudit.audit.quick_scan and siteaudit.audit.topics."""

from __future__ import annotations

from siteaudit.audit.models import ClusterPage, TopicLabel
from siteaudit.audit.quick_scan import quick_scan
from siteaudit.audit.topics import TopicIndex
from siteaudit.crawler.models import PageRecord

_GOOD_TITLE = "A Complete Guide To Trail Running Shoes"          # 39 chars
_GOOD_DESC = (
    "Compare cushioning, grip and fit across this year's best trail shoes, "
    "then pick the pair that suits your terrain."
)                                                                  # 113 chars


def _page(url: str, title: str = _GOOD_TITLE, description: str = _GOOD_DESC) -> PageRecord:
    return PageRecord(url=url, title=title, description=description, content="")


class TestQuickScan:
    def test_clean_page_has_no_issues(self):
        [result] = quick_scan([_page("https://ex.com/a")])
        assert result.issues == []
        assert not any(vars(result.quick_scan).values())

    def test_missing_fields(self):
        [result] = quick_scan([_page("https://ex.com/a", title="", description="")])
        assert result.issues == ["Missing Title", "Missing Description"]
        assert result.quick_scan.is_title_too_short is False

    def test_length_thresholds(self):
        pages = [
            _page("https://ex.com/long", title="x" * 61, description="y" * 161),
            _page("https://ex.com/edge", title="x" * 60, description="y" * 160),
            _page("https://ex.com/short", title="x" * 29, description="y" * 69),
            _page("https://ex.com/min", title="z" * 30, description="w" * 70),
        ]
        long, edge, short, minimum = quick_scan(pages)

        assert long.issues == ["Title Too Long", "Description Too Long"]
        assert "Title Too Long" not in edge.issues and "Description Too Long" not in edge.issues
        assert short.issues == ["Title Too Short", "Description Too Short"]
        assert minimum.issues == []

    def test_duplicates_flag_every_copy(self):
        pages = [
            _page("https://ex.com/a"),
            _page("https://ex.com/b"),
            _page("https://ex.com/c", title="Something Entirely Different Here", description="d" * 100),
        ]
        a, b, c = quick_scan(pages)
        assert a.quick_scan.is_title_duplicate and b.quick_scan.is_title_duplicate
        assert a.quick_scan.is_description_duplicate and b.quick_scan.is_description_duplicate
        assert "Duplicate Title" in a.issues
        assert c.issues == []

    def test_missing_values_are_not_duplicates(self):
        pages = [_page("https://ex.com/a", title=""), _page("https://ex.com/b", title="")]
        for result in quick_scan(pages):
            assert result.quick_scan.is_title_duplicate is False

    def test_to_dict_shape(self):
        [result] = quick_scan([_page("https://ex.com/a", title="")])
        data = result.to_dict()
        assert data["url"] == "https://ex.com/a"
        assert data["issues"] == ["Missing Title"]
        assert data["quick_scan"]["is_title_missing"] is True


class TestTopicIndex:
    def _pages(self) -> list[PageRecord]:
        return [_page(f"https://ex.com/{i}", title=f"Page {i}") for i in range(5)]

    def test_groups_by_topic_with_defaults(self):
        topics = {
            "https://ex.com/0": TopicLabel("shoes", "commercial"),
            "https://ex.com/1": TopicLabel("shoes", "informational"),
        }
        index = TopicIndex.build(self._pages(), topics)

        assert sorted(index.topics()) == ["Uncategorized", "shoes"]
        assert len(index.cluster("Uncategorized")) == 3
        assert index.cluster("shoes")[0] == ClusterPage("https://ex.com/0", "Page 0", "commercial")

    def test_siblings_exclude_self_and_respect_limit(self):
        index = TopicIndex.build(self._pages())
        siblings = index.siblings("Uncategorized", "https://ex.com/2", limit=3)

        assert [s.url for s in siblings] == ["https://ex.com/0", "https://ex.com/1", "https://ex.com/3"]

    def test_unknown_topic_is_empty(self):
        index = TopicIndex.build(self._pages())
        assert index.siblings("nope", "https://ex.com/0", limit=10) == []

    def test_none_topic_means_uncategorized(self):
        index = TopicIndex.build(self._pages())
        assert len(index.siblings(None, "https://ex.com/0", limit=10)) == 4
