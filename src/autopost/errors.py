"""Error taxonomy for the autopost pipeline.

Only ``ConfigError`` and ``LedgerWriteError`` abort a run. Everything else
is raised by a collaborator and converted into a per-item skip by the
pipeline runner.
"""

from __future__ import annotations


class AutopostError(Exception):
    """Base error for all autopost failures."""


class ConfigError(AutopostError):
    """Invalid or missing configuration. Fatal at startup."""


class FetchError(AutopostError):
    """A feed could not be retrieved or parsed."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url


class EnrichmentError(AutopostError):
    """The article page could not be fetched or extracted."""


class NoImageAvailable(AutopostError):
    """No image could be resolved for an item that requires one."""


class ProviderError(AutopostError):
    """The LLM provider failed (rate limit, timeout, malformed response)."""


class ImageProcessingError(AutopostError):
    """Branding or re-hosting of the lead image failed."""


class PublishError(AutopostError):
    """The blog platform rejected or failed to create the post."""


class LedgerWriteError(AutopostError):
    """The ledger store could not be read or written.

    When raised during a commit the item is NOT durably recorded and may be
    published again by a later run.
    """
