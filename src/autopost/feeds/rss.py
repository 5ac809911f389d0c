"""RSS/Atom feed source."""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from calendar import timegm
from datetime import UTC, datetime
from pathlib import Path
from urllib.error import URLError
from urllib.request import Request, urlopen

import feedparser

from autopost.config import FeedsConfig, HttpConfig
from autopost.errors import FetchError
from autopost.feeds.base import FeedSource
from autopost.models import FeedFetchResult, FeedItem

logger = logging.getLogger(__name__)


class RSSFeedSource(FeedSource):
    """Fetches RSS and Atom feeds into FeedItem objects."""

    def __init__(self, config: FeedsConfig, http: HttpConfig | None = None) -> None:
        self._config = config
        self._http = http or HttpConfig()

    @property
    def is_configured(self) -> bool:
        return self._config.is_configured

    def fetch(self) -> FeedFetchResult:
        """Fetch all configured feeds.

        Returns:
            Items from every feed that succeeded, in feed order, plus a
            url → message map for the feeds that failed.
        """
        result = FeedFetchResult()
        feed_urls = self.resolve_feed_urls()
        if not feed_urls:
            logger.warning("No RSS feed URLs configured")
            return result

        for url in feed_urls:
            try:
                result.items.extend(self.fetch_feed(url))
            except FetchError as exc:
                logger.warning("Failed to fetch feed %s: %s", url, exc)
                result.errors[url] = str(exc)

        logger.info(
            "Fetched %d items from %d/%d feeds",
            len(result.items),
            len(feed_urls) - len(result.errors),
            len(feed_urls),
        )
        return result

    def fetch_feed(self, url: str) -> list[FeedItem]:
        """Fetch and parse a single feed.

        Raises:
            FetchError: On network failure or an unparsable feed.
        """
        try:
            request = Request(url, headers={"User-Agent": self._http.user_agent})  # noqa: S310
            with urlopen(request, timeout=self._http.timeout) as response:  # noqa: S310
                raw = response.read()
        except (URLError, TimeoutError, OSError) as exc:
            raise FetchError(url, f"fetch failed: {exc}") from exc

        feed = feedparser.parse(raw)
        if feed.bozo and not feed.entries:
            raise FetchError(url, f"parse failed: {feed.bozo_exception}")

        items: list[FeedItem] = []
        for entry in feed.entries[: self._config.max_items_per_feed]:
            item = self._entry_to_item(entry, feed_url=url)
            if item is not None:
                items.append(item)
        return items

    def resolve_feed_urls(self) -> list[str]:
        """Collect feed URLs from all configured sources."""
        urls: list[str] = list(self._config.urls)

        if self._config.feeds_file:
            urls.extend(self._read_feeds_file(self._config.feeds_file))

        if self._config.opml_file:
            urls.extend(self._read_opml(self._config.opml_file))

        # Deduplicate while preserving order
        seen: set[str] = set()
        unique: list[str] = []
        for url in urls:
            normalized = url.strip()
            if normalized and normalized not in seen:
                seen.add(normalized)
                unique.append(normalized)

        return unique

    def _entry_to_item(
        self,
        entry: feedparser.FeedParserDict,
        *,
        feed_url: str = "",
    ) -> FeedItem | None:
        """Convert a feedparser entry to a FeedItem."""
        link = (entry.get("link") or "").strip()
        title = (entry.get("title") or "").strip()
        guid = (entry.get("id") or "").strip()

        identity = guid or link or title
        if not identity:
            return None

        body_html = self._extract_body_html(entry)
        summary = _strip_html(entry.get("summary", "") or body_html)

        return FeedItem(
            id=identity,
            link=link,
            title=title or "Untitled",
            published_at=self._parse_date(entry),
            source_feed=feed_url,
            summary=summary,
            body_html=body_html,
        )

    @staticmethod
    def _extract_body_html(entry: feedparser.FeedParserDict) -> str:
        """Best available HTML body: full content, else the summary."""
        content_list = entry.get("content", [])
        if content_list:
            best = max(content_list, key=lambda c: len(c.get("value", "")))
            return best.get("value", "")
        return entry.get("summary", "") or ""

    @staticmethod
    def _parse_date(entry: feedparser.FeedParserDict) -> datetime | None:
        """Parse the published date from a feed entry."""
        for field in ("published_parsed", "updated_parsed"):
            time_struct = entry.get(field)
            if time_struct:
                try:
                    return datetime.fromtimestamp(timegm(time_struct), tz=UTC)
                except (ValueError, OverflowError):
                    continue
        return None

    @staticmethod
    def _read_feeds_file(path: str) -> list[str]:
        """Read feed URLs from a newline-delimited text file."""
        feeds_path = Path(path).expanduser()
        if not feeds_path.exists():
            logger.warning("Feeds file not found: %s", path)
            return []

        lines = feeds_path.read_text(encoding="utf-8").splitlines()
        return [
            line.strip()
            for line in lines
            if line.strip() and not line.strip().startswith("#")
        ]

    @staticmethod
    def _read_opml(path: str) -> list[str]:
        """Extract feed URLs from an OPML file."""
        opml_path = Path(path).expanduser()
        if not opml_path.exists():
            logger.warning("OPML file not found: %s", path)
            return []

        try:
            tree = ET.parse(opml_path)  # noqa: S314
        except ET.ParseError:
            logger.warning("Failed to parse OPML file: %s", path, exc_info=True)
            return []

        return [o.get("xmlUrl", "") for o in tree.iter("outline") if o.get("xmlUrl")]


def _strip_html(html: str) -> str:
    """Rough HTML tag stripping for feed snippets."""
    text = re.sub(r"<[^>]+>", "", html)
    text = text.replace("&amp;", "&")
    text = text.replace("&lt;", "<")
    text = text.replace("&gt;", ">")
    text = text.replace("&quot;", '"')
    text = text.replace("&#39;", "'")
    text = text.replace("&nbsp;", " ")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
