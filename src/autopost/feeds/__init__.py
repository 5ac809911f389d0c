"""Feed sources — raw candidate items for each run."""

from autopost.feeds.base import FeedSource
from autopost.feeds.rss import RSSFeedSource

__all__ = ["FeedSource", "RSSFeedSource"]
