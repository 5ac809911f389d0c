"""Item selector — turns freshly fetched feed items into this run's work queue.

Read-only with respect to the ledger.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from autopost.models import EPOCH, FeedItem, SelectionMode, WorkItem
from autopost.store.ledger import LedgerStore

logger = logging.getLogger(__name__)


def _recency_key(item: FeedItem) -> datetime:
    # Unknown dates sort as the earliest possible, i.e. lowest priority.
    return item.published_at or EPOCH


class ItemSelector:
    """Filters already-published items and orders the rest.

    Modes:
        ``all_in_feed_order``: every eligible item. Items from a single
        feed keep their feed order; items from several feeds are ordered
        newest first.
        ``single_newest_across_feeds``: only the newest eligible item.
    """

    def __init__(self, ledger: LedgerStore, mode: SelectionMode = SelectionMode.ALL_IN_FEED_ORDER) -> None:
        self._ledger = ledger
        self.mode = mode

    def is_published(self, item: FeedItem) -> bool:
        """Whether the ledger already knows this item by id or by link."""
        if self._ledger.exists(item.id):
            return True
        return bool(item.link) and item.link != item.id and self._ledger.exists(item.link)

    def select_eligible(self, candidates: Sequence[FeedItem]) -> list[WorkItem]:
        """Compute the ordered work queue for this run."""
        seen: set[str] = set()
        survivors: list[FeedItem] = []

        for item in candidates:
            keys = {item.id, item.link} - {""}
            if keys & seen:
                logger.debug("Duplicate in batch, dropping: %s", item.title or item.id)
                continue
            seen.update(keys)

            if self.is_published(item):
                logger.info("Already posted: %s", item.title or item.id)
                continue
            survivors.append(item)

        feeds = {item.source_feed for item in survivors}
        if self.mode == SelectionMode.SINGLE_NEWEST_ACROSS_FEEDS:
            ordered = sorted(survivors, key=_recency_key, reverse=True)[:1]
        elif len(feeds) > 1:
            # sorted() is stable, so equal dates keep their fetch order.
            ordered = sorted(survivors, key=_recency_key, reverse=True)
        else:
            ordered = survivors

        logger.info(
            "%d of %d fetched items eligible (%s)",
            len(survivors),
            len(candidates),
            self.mode.value,
        )
        return [WorkItem(item=item, position=index) for index, item in enumerate(ordered)]
