"""
Pytest configuration and fixtures.
"""
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from image_optimizer.clients.local_assets import LocalAssetHost
from image_optimizer.config import get_image_config
from image_optimizer.main import app
from image_optimizer.models import ImageConfig
from image_optimizer.services.cache_store import DiskCacheStore
from image_optimizer.services.optimizer import ImageOptimizer, get_optimizer
from image_optimizer.services.transformer import ImageTransformer


class FakeClock:
    """Controllable epoch-millisecond clock for cache expiry tests."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


def make_image_bytes(fmt: str, size=(1200, 800), mode="RGB", color=(200, 30, 30)) -> bytes:
    """Encode a solid-color image with Pillow."""
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    image = Image.new(mode, size, color)
    output = io.BytesIO()
    image.save(output, format=fmt)
    return output.getvalue()


def make_animated_png(size=(64, 64)) -> bytes:
    frames = [Image.new("RGB", size, (255, 0, 0)), Image.new("RGB", size, (0, 0, 255))]
    output = io.BytesIO()
    frames[0].save(output, format="PNG", save_all=True, append_images=frames[1:], duration=100, loop=0)
    return output.getvalue()


def make_animated_gif(size=(64, 64)) -> bytes:
    frames = [Image.new("RGB", size, (255, 0, 0)), Image.new("RGB", size, (0, 0, 255))]
    output = io.BytesIO()
    frames[0].save(output, format="GIF", save_all=True, append_images=frames[1:], duration=100, loop=0)
    return output.getvalue()


SVG_BYTES = (
    b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10">'
    b'<rect width="10" height="10" fill="red"/></svg>'
)


@pytest.fixture
def image_config():
    """Small image configuration used across tests."""
    return ImageConfig(
        device_sizes=[640, 1080],
        image_sizes=[64, 128],
        qualities=[75],
        formats=["image/webp"],
        minimum_cache_ttl=60,
        dangerously_allow_svg=False,
    )


@pytest.fixture
def public_dir(tmp_path):
    """Public directory seeded with a few uploads."""
    root = tmp_path / "public"
    uploads = root / "uploads"
    uploads.mkdir(parents=True)
    (uploads / "photo.jpg").write_bytes(make_image_bytes("JPEG", size=(1200, 800)))
    (uploads / "small.jpg").write_bytes(make_image_bytes("JPEG", size=(400, 300)))
    (uploads / "alpha.png").write_bytes(make_image_bytes("PNG", size=(800, 600), mode="RGBA"))
    (uploads / "anim.png").write_bytes(make_animated_png())
    (uploads / "anim.gif").write_bytes(make_animated_gif())
    (uploads / "logo.svg").write_bytes(SVG_BYTES)
    return root


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def asset_host(public_dir):
    return LocalAssetHost(public_dir=str(public_dir))


@pytest.fixture
def cache_store(tmp_path, clock):
    return DiskCacheStore(cache_dir=str(tmp_path / "cache"), eviction="stale", clock=clock)


@pytest.fixture
def transformer(asset_host, cache_store):
    return ImageTransformer(asset_host, cache_store)


@pytest.fixture
def optimizer(transformer, cache_store):
    return ImageOptimizer(transformer=transformer, cache_store=cache_store)


@pytest.fixture
def client(optimizer, image_config):
    """Create a test client wired to the per-test cache and public directory."""
    app.dependency_overrides[get_optimizer] = lambda: optimizer
    app.dependency_overrides[get_image_config] = lambda: image_config
    yield TestClient(app)
    app.dependency_overrides.clear()
