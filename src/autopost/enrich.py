"""Article page enrichment — full body and lead image from the source page.

Fetching uses ``urllib.request``; body extraction uses ``trafilatura``.
Image discovery prefers the page's ``og:image`` and falls back to the first
``<img>`` tag. Everything here is best-effort: the runner treats an
:class:`EnrichmentError` as "keep the feed-provided content".
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from urllib.error import URLError
from urllib.request import Request, urlopen

import trafilatura

from autopost.config import HttpConfig
from autopost.errors import EnrichmentError
from autopost.models import EnrichedContent

logger = logging.getLogger(__name__)

_OG_IMAGE_RES = (
    re.compile(r"""property=["']og:image["']\s*content=["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""<meta[^>]*content=["']([^"']+)["'][^>]*property=["']og:image["']""", re.IGNORECASE),
    re.compile(r"""<meta[^>]*name=["']og:image["'][^>]*content=["']([^"']+)["']""", re.IGNORECASE),
)
_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)


def extract_og_image(html: str | None) -> str | None:
    """The ``og:image`` URL declared by a page, if any."""
    if not html:
        return None
    for pattern in _OG_IMAGE_RES:
        match = pattern.search(html)
        if match:
            return match.group(1)
    return None


def extract_first_image(html: str | None) -> str | None:
    """The ``src`` of the first ``<img>`` tag, if any."""
    if not html:
        return None
    match = _IMG_SRC_RE.search(html)
    return match.group(1) if match else None


def word_count(html: str) -> int:
    text = re.sub(r"<[^>]+>", " ", html or "")
    return len(text.split())


class PageEnricher(ABC):
    """Recovers article body and lead image from an article URL."""

    @abstractmethod
    def fetch_page(self, url: str) -> str | None:
        """Return the page HTML, or None if it could not be fetched."""

    @abstractmethod
    def extract_body(self, html: str) -> str | None:
        """Return the main article body as HTML, or None."""

    @abstractmethod
    def extract_image(self, html: str) -> str | None:
        """Return the lead image URL, or None."""

    def enrich(self, url: str) -> EnrichedContent:
        """Fetch a page and extract what it offers.

        Raises:
            EnrichmentError: If the page could not be fetched.
        """
        html = self.fetch_page(url)
        if not html:
            raise EnrichmentError(f"Could not fetch page {url}")
        return EnrichedContent(
            body_html=self.extract_body(html),
            image_url=self.extract_image(html),
        )


class WebPageEnricher(PageEnricher):
    """Default enricher: urllib fetch, trafilatura extraction."""

    def __init__(self, http: HttpConfig | None = None) -> None:
        self._http = http or HttpConfig()

    def fetch_page(self, url: str) -> str | None:
        if not url:
            return None
        try:
            request = Request(url, headers={"User-Agent": self._http.user_agent})  # noqa: S310
            with urlopen(request, timeout=self._http.timeout) as response:  # noqa: S310
                return response.read().decode("utf-8", errors="replace")
        except (URLError, TimeoutError, OSError, ValueError) as exc:
            logger.debug("Failed to fetch %s: %s", url, exc)
            return None

    def extract_body(self, html: str) -> str | None:
        try:
            extracted = trafilatura.extract(
                html,
                include_comments=False,
                include_tables=True,
                include_links=False,
                output_format="html",
            )
        except Exception as exc:
            logger.debug("Extraction failed: %s", exc)
            return None
        return extracted or None

    def extract_image(self, html: str) -> str | None:
        return extract_og_image(html) or extract_first_image(html)
