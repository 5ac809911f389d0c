"""Lead image branding with Pillow.

Covers the source watermark with a white box (when configured) and stamps
our logo in the bottom-right corner. Output is always JPEG.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from urllib.error import URLError
from urllib.request import Request, urlopen

from PIL import Image, ImageDraw, UnidentifiedImageError

from autopost.config import HttpConfig, ImagesConfig
from autopost.errors import ImageProcessingError

logger = logging.getLogger(__name__)


def download_image(url: str, http: HttpConfig | None = None) -> bytes:
    """Download raw image bytes.

    Raises:
        ImageProcessingError: If the download fails or returns nothing.
    """
    http = http or HttpConfig()
    try:
        request = Request(url, headers={"User-Agent": http.user_agent})  # noqa: S310
        with urlopen(request, timeout=http.timeout) as response:  # noqa: S310
            data = response.read()
    except (URLError, TimeoutError, OSError, ValueError) as exc:
        raise ImageProcessingError(f"Could not download image {url}: {exc}") from exc
    if not data:
        raise ImageProcessingError(f"Empty image body from {url}")
    return data


class LogoBrander:
    """Applies the cover box and logo overlay to an image."""

    def __init__(self, config: ImagesConfig) -> None:
        self._config = config
        self._cover_box = config.cover_box_coords()
        self._logo: Image.Image | None = None

    def _load_logo(self) -> Image.Image:
        if self._logo is None:
            path = Path(self._config.logo_path).expanduser()
            try:
                self._logo = Image.open(path).convert("RGBA")
            except (OSError, UnidentifiedImageError) as exc:
                raise ImageProcessingError(f"Could not load logo {path}: {exc}") from exc
        return self._logo

    def brand(self, data: bytes) -> bytes:
        """Return branded JPEG bytes for the given image bytes."""
        try:
            image = Image.open(io.BytesIO(data)).convert("RGBA")
        except (OSError, UnidentifiedImageError, Image.DecompressionBombError) as exc:
            raise ImageProcessingError(f"Unreadable image: {exc}") from exc

        if self._cover_box:
            x, y, w, h = self._cover_box
            ImageDraw.Draw(image).rectangle((x, y, x + w, y + h), fill=(255, 255, 255, 255))

        logo = self._scaled_logo(image.width)
        pos_x = max(image.width - logo.width - self._config.margin, 0)
        pos_y = max(image.height - logo.height - self._config.margin, 0)
        overlay = Image.new("RGBA", image.size, (0, 0, 0, 0))
        overlay.paste(logo, (pos_x, pos_y), logo)
        image = Image.alpha_composite(image, overlay)

        out = io.BytesIO()
        image.convert("RGB").save(out, format="JPEG", quality=self._config.jpeg_quality)
        logger.debug("Branded image %dx%d", image.width, image.height)
        return out.getvalue()

    def _scaled_logo(self, image_width: int) -> Image.Image:
        logo = self._load_logo()
        width = max(int(image_width * self._config.logo_scale), 1)
        height = max(int(logo.height * (width / logo.width)), 1)
        logo = logo.resize((width, height), Image.Resampling.LANCZOS)

        opacity = min(max(self._config.logo_opacity, 0.0), 1.0)
        if opacity < 1.0:
            alpha = logo.getchannel("A").point(lambda a: int(a * opacity))
            logo.putalpha(alpha)
        return logo
