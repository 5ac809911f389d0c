"""Tests for the item selector."""

from __future__ import annotations

from autopost.models import LedgerEntry, SelectionMode
from autopost.selector import ItemSelector


def _ids(work_items):
    return [w.item.id for w in work_items]


class TestFiltering:
    def test_drops_ledgered_by_id(self, ledger, make_item):
        ledger.insert(LedgerEntry(identity="a", link="https://news.example.com/a.html"))
        selector = ItemSelector(ledger)
        assert _ids(selector.select_eligible([make_item("a"), make_item("b")])) == ["b"]

    def test_drops_ledgered_by_link(self, ledger, make_item):
        ledger.insert(LedgerEntry(identity="old-guid", link="https://news.example.com/a.html"))
        selector = ItemSelector(ledger)
        item = make_item("new-guid", link="https://news.example.com/a.html")
        assert selector.select_eligible([item]) == []

    def test_in_batch_duplicates_first_wins(self, ledger, make_item):
        first = make_item("a", link="https://news.example.com/shared.html")
        dup_link = make_item("b", link="https://news.example.com/shared.html")
        dup_id = make_item("a", link="https://news.example.com/other.html")
        selector = ItemSelector(ledger)
        assert _ids(selector.select_eligible([first, dup_link, dup_id])) == ["a"]

    def test_items_without_links_are_not_batch_duplicates(self, ledger, make_item):
        selector = ItemSelector(ledger)
        items = [make_item("a", link=""), make_item("b", link="")]
        assert _ids(selector.select_eligible(items)) == ["a", "b"]

    def test_selector_does_not_write(self, ledger, make_item):
        ItemSelector(ledger).select_eligible([make_item("a")])
        assert ledger.count() == 0

    def test_positions_follow_queue_order(self, ledger, make_item):
        work = ItemSelector(ledger).select_eligible([make_item("a"), make_item("b")])
        assert [w.position for w in work] == [0, 1]


class TestAllInFeedOrder:
    def test_single_feed_keeps_feed_order(self, ledger, make_item):
        items = [make_item("T3", hour=3), make_item("T1", hour=1), make_item("T2", hour=2)]
        work = ItemSelector(ledger, SelectionMode.ALL_IN_FEED_ORDER).select_eligible(items)
        assert _ids(work) == ["T3", "T1", "T2"]

    def test_multiple_feeds_newest_first(self, ledger, make_item):
        items = [
            make_item("a1", hour=1, feed="https://a.example/rss"),
            make_item("b3", hour=3, feed="https://b.example/rss"),
            make_item("a2", hour=2, feed="https://a.example/rss"),
        ]
        work = ItemSelector(ledger).select_eligible(items)
        assert _ids(work) == ["b3", "a2", "a1"]

    def test_missing_dates_sort_last(self, ledger, make_item):
        items = [
            make_item("undated", feed="https://a.example/rss"),
            make_item("dated", hour=5, feed="https://b.example/rss"),
        ]
        assert _ids(ItemSelector(ledger).select_eligible(items)) == ["dated", "undated"]


class TestSingleNewest:
    def test_picks_newest_only(self, ledger, make_item):
        items = [make_item("T3", hour=3), make_item("T1", hour=1), make_item("T2", hour=2)]
        selector = ItemSelector(ledger, SelectionMode.SINGLE_NEWEST_ACROSS_FEEDS)
        assert _ids(selector.select_eligible(items)) == ["T3"]

    def test_newest_already_posted_falls_to_next(self, ledger, make_item):
        ledger.insert(LedgerEntry(identity="T3"))
        items = [make_item("T3", hour=3), make_item("T1", hour=1), make_item("T2", hour=2)]
        selector = ItemSelector(ledger, SelectionMode.SINGLE_NEWEST_ACROSS_FEEDS)
        assert _ids(selector.select_eligible(items)) == ["T2"]

    def test_empty_when_all_posted(self, ledger, make_item):
        ledger.insert(LedgerEntry(identity="a"))
        selector = ItemSelector(ledger, SelectionMode.SINGLE_NEWEST_ACROSS_FEEDS)
        assert selector.select_eligible([make_item("a")]) == []
