"""Image branding and re-hosting."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING

from autopost.images.branding import LogoBrander, download_image
from autopost.images.hosts import GhostImageHost, ImageHost, ImgurImageHost

if TYPE_CHECKING:
    from autopost.config import AutopostConfig

logger = logging.getLogger(__name__)


class ImageProcessor(ABC):
    """Turns a source image URL into a branded, re-hosted URL."""

    @abstractmethod
    def brand_and_host(self, url: str) -> str:
        """Return the public URL of the branded copy.

        Raises:
            ImageProcessingError: If any step fails.
        """


class BrandingImageProcessor(ImageProcessor):
    """Download, brand with :class:`LogoBrander`, upload to an :class:`ImageHost`."""

    def __init__(
        self,
        brander: LogoBrander,
        host: ImageHost,
        download: Callable[[str], bytes] = download_image,
    ) -> None:
        self._brander = brander
        self._host = host
        self._download = download

    def brand_and_host(self, url: str) -> str:
        branded = self._brander.brand(self._download(url))
        hosted = self._host.upload(branded)
        logger.info("Re-hosted branded image: %s", hosted)
        return hosted


def create_image_processor(config: AutopostConfig) -> ImageProcessor | None:
    """Build the processor for ``images.host``, or None when branding is off.

    Raises:
        ValueError: If the host is unknown.
    """
    if not config.images.brand:
        return None

    if config.images.host == "imgur":
        host: ImageHost = ImgurImageHost(config.imgur, timeout=config.publish.timeout)
    elif config.images.host == "ghost":
        from autopost.publishers.ghost import GhostAPIClient

        host = GhostImageHost(GhostAPIClient(config.ghost, timeout=config.publish.timeout))
    else:
        raise ValueError(f"Unknown image host: {config.images.host!r}")

    return BrandingImageProcessor(
        LogoBrander(config.images),
        host,
        download=lambda url: download_image(url, config.http),
    )


__all__ = [
    "BrandingImageProcessor",
    "GhostImageHost",
    "ImageHost",
    "ImageProcessor",
    "ImgurImageHost",
    "LogoBrander",
    "create_image_processor",
]
