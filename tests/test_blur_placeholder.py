"""
Tests for blur placeholder generation.
"""
import base64
import io
import logging

import pytest
from PIL import Image

from conftest import SVG_BYTES, make_animated_gif, make_image_bytes
from image_optimizer.services.blur_placeholder import BlurPlaceholderService, generate_blur_data_url

PREFIX = "data:image/jpeg;base64,"


def decode_data_url(data_url: str) -> Image.Image:
    return Image.open(io.BytesIO(base64.b64decode(data_url[len(PREFIX):])))


@pytest.mark.parametrize(
    "fmt,mime,mode",
    [
        ("JPEG", "image/jpeg", "RGB"),
        ("PNG", "image/png", "RGBA"),
        ("WEBP", "image/webp", "RGB"),
    ],
)
def test_generates_tiny_jpeg(fmt, mime, mode):
    data_url = generate_blur_data_url(make_image_bytes(fmt, mode=mode), mime)

    assert data_url.startswith(PREFIX)
    image = decode_data_url(data_url)
    assert image.format == "JPEG"
    assert image.size == (8, 5)


def test_custom_blur_size():
    data_url = generate_blur_data_url(make_image_bytes("JPEG"), "image/jpeg", blur_size=16)
    assert decode_data_url(data_url).width == 16


def test_small_source_not_upscaled():
    data_url = generate_blur_data_url(make_image_bytes("JPEG", size=(4, 4)), "image/jpeg")
    assert decode_data_url(data_url).size == (4, 4)


def test_unsupported_mime_returns_none():
    assert generate_blur_data_url(SVG_BYTES, "image/svg+xml") is None
    assert generate_blur_data_url(b"%PDF-1.7", "application/pdf") is None


def test_animated_source_returns_none():
    assert generate_blur_data_url(make_animated_gif(), "image/gif") is None


def test_undecodable_source_returns_none(caplog):
    with caplog.at_level(logging.ERROR):
        assert generate_blur_data_url(b"garbage", "image/jpeg") is None
    assert any("BlurPlaceholderFailed" in r.message for r in caplog.records)


@pytest.mark.asyncio
async def test_service_reads_asset(asset_host):
    service = BlurPlaceholderService(asset_host, blur_size=8)
    data_url = await service.generate("/uploads/photo.jpg", "image/jpeg")
    assert data_url.startswith(PREFIX)


@pytest.mark.asyncio
async def test_service_missing_asset_returns_none(asset_host):
    service = BlurPlaceholderService(asset_host)
    assert await service.generate("/uploads/missing.jpg", "image/jpeg") is None


@pytest.mark.asyncio
async def test_service_skips_read_for_unsupported_mime(asset_host, monkeypatch):
    service = BlurPlaceholderService(asset_host)

    async def fail_read(url):
        raise AssertionError("asset should not be read")

    monkeypatch.setattr(asset_host, "read_asset", fail_read)
    assert await service.generate("/uploads/logo.svg", "image/svg+xml") is None
