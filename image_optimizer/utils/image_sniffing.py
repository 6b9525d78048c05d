"""
Binary sniffing helpers: animated/vector detection and MIME/extension mapping.

Detection works on the raw bytes and the declared content type; it never
decodes the image.
"""
from pathlib import PurePosixPath

SVG_CONTENT_TYPE = "image/svg+xml"

# Animation chunks sit near the start of the stream, so only a prefix is scanned.
WEBP_SCAN_WINDOW = 1000
PNG_SCAN_WINDOW = 2000

_GIF_IMAGE_DESCRIPTOR = 0x2C

_EXTENSION_TO_CONTENT_TYPE = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".avif": "image/avif",
    ".svg": SVG_CONTENT_TYPE,
    ".ico": "image/x-icon",
    ".bmp": "image/bmp",
    ".tiff": "image/tiff",
}

_CONTENT_TYPE_TO_EXTENSION = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/avif": "avif",
    SVG_CONTENT_TYPE: "svg",
    "image/x-icon": "ico",
    "image/bmp": "bmp",
    "image/tiff": "tiff",
}


def content_type_from_url(url: str) -> str:
    """Guess the content type from the extension of a URL path."""
    suffix = PurePosixPath(url.split("?", 1)[0]).suffix.lower()
    return _EXTENSION_TO_CONTENT_TYPE.get(suffix, "application/octet-stream")


def extension_from_content_type(content_type: str) -> str:
    return _CONTENT_TYPE_TO_EXTENSION.get(content_type, "bin")


def content_type_from_extension(extension: str) -> str:
    return _EXTENSION_TO_CONTENT_TYPE.get(f".{extension.lower().lstrip('.')}", "application/octet-stream")


def is_vector(content_type: str) -> bool:
    return content_type == SVG_CONTENT_TYPE


def _gif_is_animated(buffer: bytes) -> bool:
    # More than one image descriptor means more than one frame.
    return buffer.count(bytes([_GIF_IMAGE_DESCRIPTOR]), 0, max(len(buffer) - 1, 0)) > 1


def _webp_is_animated(buffer: bytes) -> bool:
    window = buffer[: min(len(buffer), WEBP_SCAN_WINDOW + 3)]
    return any(marker in window for marker in (b"ANIM", b"ANMF", b"ANM\x00"))


def _png_is_animated(buffer: bytes) -> bool:
    window = buffer[: min(len(buffer), PNG_SCAN_WINDOW + 3)]
    return b"acTL" in window


def is_animated(buffer: bytes, content_type: str) -> bool:
    """
    Report whether the source bytes hold an animation.

    Args:
        buffer: Raw source bytes
        content_type: Declared MIME type

    Returns:
        True for multi-frame GIFs, animated WebP and APNG; False otherwise
    """
    if content_type == "image/gif":
        return _gif_is_animated(buffer)
    if content_type == "image/webp":
        return _webp_is_animated(buffer)
    if content_type == "image/png":
        return _png_is_animated(buffer)
    return False
