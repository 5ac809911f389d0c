"""Tests for image branding and re-hosting."""

from __future__ import annotations

import base64
import io
import json
from unittest.mock import MagicMock, patch
from urllib.error import URLError
from urllib.parse import parse_qs

import pytest
from PIL import Image

from autopost.config import AutopostConfig, GhostConfig, ImagesConfig, ImgurConfig
from autopost.errors import ImageProcessingError
from autopost.images import (
    BrandingImageProcessor,
    GhostImageHost,
    ImgurImageHost,
    LogoBrander,
    create_image_processor,
)
from autopost.images.branding import download_image
from autopost.publishers.ghost import GhostAPIClient


def _png(size, color) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def logo_path(tmp_path):
    path = tmp_path / "logo.png"
    path.write_bytes(_png((100, 50), (255, 0, 0, 255)))
    return path


@pytest.fixture
def source_image():
    return _png((400, 300), (0, 0, 255, 255))


def _response(payload: bytes) -> MagicMock:
    resp = MagicMock()
    resp.read.return_value = payload
    resp.__enter__.return_value = resp
    return resp


class TestLogoBrander:
    def test_output_is_jpeg_same_size(self, logo_path, source_image):
        brander = LogoBrander(ImagesConfig(logo_path=str(logo_path)))
        out = Image.open(io.BytesIO(brander.brand(source_image)))
        assert out.format == "JPEG"
        assert out.size == (400, 300)

    def test_logo_bottom_right(self, logo_path, source_image):
        config = ImagesConfig(logo_path=str(logo_path), logo_opacity=1.0, margin=20)
        out = Image.open(io.BytesIO(LogoBrander(config).brand(source_image))).convert("RGB")
        # Logo is 25% of 400px wide (100x50), placed 20px from the corner.
        r, g, b = out.getpixel((400 - 20 - 50, 300 - 20 - 25))
        assert r > 200 and b < 60
        r, g, b = out.getpixel((10, 10))
        assert b > 200 and r < 60

    def test_cover_box_painted_white(self, logo_path, source_image):
        config = ImagesConfig(logo_path=str(logo_path), cover_box="0,0,50,40")
        out = Image.open(io.BytesIO(LogoBrander(config).brand(source_image))).convert("RGB")
        assert all(c > 240 for c in out.getpixel((20, 20)))

    def test_opacity_blends(self, logo_path, source_image):
        config = ImagesConfig(logo_path=str(logo_path), logo_opacity=0.5)
        out = Image.open(io.BytesIO(LogoBrander(config).brand(source_image))).convert("RGB")
        r, g, b = out.getpixel((400 - 20 - 50, 300 - 20 - 25))
        assert 90 < r < 170 and 90 < b < 170

    def test_unreadable_image(self, logo_path):
        with pytest.raises(ImageProcessingError):
            LogoBrander(ImagesConfig(logo_path=str(logo_path))).brand(b"not an image")

    def test_oversized_image(self, logo_path, source_image, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)
        with pytest.raises(ImageProcessingError):
            LogoBrander(ImagesConfig(logo_path=str(logo_path))).brand(source_image)

    def test_missing_logo(self, tmp_path, source_image):
        brander = LogoBrander(ImagesConfig(logo_path=str(tmp_path / "nope.png")))
        with pytest.raises(ImageProcessingError):
            brander.brand(source_image)


class TestDownload:
    @patch("autopost.images.branding.urlopen")
    def test_download(self, mock_urlopen):
        mock_urlopen.return_value = _response(b"bytes")
        assert download_image("https://img.example.com/a.jpg") == b"bytes"

    @patch("autopost.images.branding.urlopen", side_effect=URLError("404"))
    def test_download_failure(self, _mock):
        with pytest.raises(ImageProcessingError):
            download_image("https://img.example.com/a.jpg")

    @patch("autopost.images.branding.urlopen")
    def test_empty_body(self, mock_urlopen):
        mock_urlopen.return_value = _response(b"")
        with pytest.raises(ImageProcessingError):
            download_image("https://img.example.com/a.jpg")


class TestImgurImageHost:
    @patch("autopost.images.hosts.urllib.request.urlopen")
    def test_upload(self, mock_urlopen):
        mock_urlopen.return_value = _response(
            json.dumps({"success": True, "data": {"link": "https://i.imgur.com/abc.jpg"}}).encode()
        )

        url = ImgurImageHost(ImgurConfig(client_id="imgur-cid")).upload(b"jpegbytes")

        request = mock_urlopen.call_args[0][0]
        assert request.get_header("Authorization") == "Client-ID imgur-cid"
        form = parse_qs(request.data.decode())
        assert base64.b64decode(form["image"][0]) == b"jpegbytes"
        assert url == "https://i.imgur.com/abc.jpg"

    @patch("autopost.images.hosts.urllib.request.urlopen")
    def test_rejected(self, mock_urlopen):
        mock_urlopen.return_value = _response(json.dumps({"success": False, "status": 400}).encode())
        with pytest.raises(ImageProcessingError):
            ImgurImageHost(ImgurConfig(client_id="x")).upload(b"jpegbytes")

    @patch("autopost.images.hosts.urllib.request.urlopen", side_effect=URLError("down"))
    def test_network_failure(self, _mock):
        with pytest.raises(ImageProcessingError):
            ImgurImageHost(ImgurConfig(client_id="x")).upload(b"jpegbytes")


class TestGhostImageHost:
    def test_upload_delegates(self):
        client = MagicMock()
        client.upload_image.return_value = "https://blog.example.com/i.jpg"
        assert GhostImageHost(client).upload(b"x") == "https://blog.example.com/i.jpg"

    def test_failure(self):
        client = MagicMock()
        client.upload_image.side_effect = KeyError("images")
        with pytest.raises(ImageProcessingError):
            GhostImageHost(client).upload(b"x")

    @patch("autopost.publishers.ghost.urllib.request.urlopen")
    def test_empty_images_response(self, mock_urlopen):
        mock_urlopen.return_value = _response(json.dumps({"images": []}).encode())
        client = GhostAPIClient(GhostConfig(url="https://blog.example.com", admin_api_key="k:" + "ab" * 32))
        with pytest.raises(ImageProcessingError):
            GhostImageHost(client).upload(b"x")


class TestBrandingImageProcessor:
    def test_pipeline(self):
        brander = MagicMock()
        brander.brand.return_value = b"branded"
        host = MagicMock()
        host.upload.return_value = "https://i.imgur.com/b.jpg"
        processor = BrandingImageProcessor(brander, host, download=lambda url: b"raw")

        assert processor.brand_and_host("https://src/a.jpg") == "https://i.imgur.com/b.jpg"
        brander.brand.assert_called_once_with(b"raw")
        host.upload.assert_called_once_with(b"branded")

    def test_disabled_returns_none(self):
        assert create_image_processor(AutopostConfig()) is None

    def test_factory_imgur(self, logo_path):
        config = AutopostConfig.model_validate(
            {"images": {"brand": True, "logo_path": str(logo_path)}, "imgur": {"client_id": "x"}}
        )
        assert isinstance(create_image_processor(config), BrandingImageProcessor)

    def test_factory_unknown_host(self, logo_path):
        config = AutopostConfig.model_validate(
            {"images": {"brand": True, "host": "flickr", "logo_path": str(logo_path)}}
        )
        with pytest.raises(ValueError):
            create_image_processor(config)
