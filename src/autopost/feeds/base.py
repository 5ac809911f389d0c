"""Base class for feed sources."""

from __future__ import annotations

from abc import ABC, abstractmethod

from autopost.models import FeedFetchResult


class FeedSource(ABC):
    """Produces the raw candidate items for a run.

    A failing feed is recorded in ``FeedFetchResult.errors`` and skipped;
    the run continues with the feeds that succeeded.
    """

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """Whether at least one feed is configured."""

    @abstractmethod
    def fetch(self) -> FeedFetchResult:
        """Fetch and normalize items from every configured feed."""
