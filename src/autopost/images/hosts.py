"""Image hosts that turn branded bytes into a public URL."""

from __future__ import annotations

import base64
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod

from autopost.config import ImgurConfig
from autopost.errors import ImageProcessingError
from autopost.publishers.ghost import GhostAPIClient

logger = logging.getLogger(__name__)

IMGUR_UPLOAD_URL = "https://api.imgur.com/3/image"


class ImageHost(ABC):
    """Uploads an image and returns where it can be fetched."""

    @abstractmethod
    def upload(self, data: bytes) -> str:
        """Upload JPEG bytes and return the public URL.

        Raises:
            ImageProcessingError: On any upload failure.
        """


class ImgurImageHost(ImageHost):
    """Anonymous Imgur upload authenticated with a client ID."""

    def __init__(self, config: ImgurConfig, timeout: int = 20) -> None:
        self._config = config
        self._timeout = timeout

    def upload(self, data: bytes) -> str:
        form = urllib.parse.urlencode(
            {"image": base64.b64encode(data).decode("ascii"), "type": "base64"}
        ).encode("utf-8")
        req = urllib.request.Request(
            IMGUR_UPLOAD_URL,
            data=form,
            method="POST",
            headers={"Authorization": f"Client-ID {self._config.client_id}"},
        )
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except (urllib.error.URLError, TimeoutError, OSError, ValueError) as exc:
            raise ImageProcessingError(f"Imgur upload failed: {exc}") from exc

        link = (payload.get("data") or {}).get("link")
        if not payload.get("success") or not link:
            raise ImageProcessingError(f"Imgur upload rejected: {payload.get('status')}")
        return link


class GhostImageHost(ImageHost):
    """Uploads into the Ghost site's own image storage."""

    def __init__(self, client: GhostAPIClient) -> None:
        self._client = client

    def upload(self, data: bytes) -> str:
        try:
            return self._client.upload_image(data)
        except (
            urllib.error.URLError, TimeoutError, OSError, ValueError, KeyError, IndexError
        ) as exc:
            raise ImageProcessingError(f"Ghost image upload failed: {exc}") from exc
