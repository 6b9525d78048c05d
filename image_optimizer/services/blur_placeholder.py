"""
Blur placeholder generation: a tiny JPEG, base64-encoded as a data URL.
"""
import asyncio
import base64
import logging
from typing import Optional

from image_optimizer.clients.interfaces import IAssetHost
from image_optimizer.config import settings
from image_optimizer.utils.image_derivatives import encode_image, open_image, resize_to_width
from image_optimizer.utils.image_sniffing import is_animated

logger = logging.getLogger("image_optimizer")

SUPPORTED_MIME_TYPES = frozenset(
    {"image/jpeg", "image/png", "image/webp", "image/avif", "image/gif"}
)

BLUR_QUALITY = 70


def generate_blur_data_url(buffer: bytes, mime: str, blur_size: int = 8) -> Optional[str]:
    """
    Build a blur placeholder for an image.

    Args:
        buffer: Source image bytes
        mime: Declared MIME type
        blur_size: Placeholder width in pixels (never upscaled)

    Returns:
        "data:image/jpeg;base64,..." or None for unsupported, animated or undecodable input
    """
    if mime not in SUPPORTED_MIME_TYPES:
        return None
    if is_animated(buffer, mime):
        return None

    try:
        tiny = encode_image(resize_to_width(open_image(buffer), blur_size), "image/jpeg", BLUR_QUALITY)
    except Exception as e:
        logger.error(f"BlurPlaceholderFailed mime={mime} error={type(e).__name__}: {e}")
        return None

    return f"data:image/jpeg;base64,{base64.b64encode(tiny).decode('ascii')}"


class BlurPlaceholderService:
    """Generates blur placeholders for stored assets."""

    def __init__(self, asset_host: IAssetHost, blur_size: Optional[int] = None):
        self.asset_host = asset_host
        self.blur_size = blur_size or settings.BLUR_SIZE

    async def generate(self, url: str, mime: str) -> Optional[str]:
        """Return a blur data URL for the asset at `url`, or None if none can be made."""
        if mime not in SUPPORTED_MIME_TYPES:
            return None

        buffer = await self.asset_host.read_asset(url)
        if buffer is None:
            return None

        return await asyncio.to_thread(generate_blur_data_url, buffer, mime, self.blur_size)
