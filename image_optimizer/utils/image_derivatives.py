"""
Image derivative utilities: decode, width-bounded resize and per-codec encode.

This module is the only place that talks to Pillow and CairoSVG. It provides functions to:
- Decode source bytes
- Rasterize SVG documents at a target width
- Resize an image to a target width without upscaling
- Encode to AVIF, WebP, PNG, GIF or JPEG
"""
import logging
from io import BytesIO
from typing import Optional

import cairosvg
from PIL import Image

logger = logging.getLogger("image_optimizer")

# Pillow format names keyed by MIME type.
PIL_FORMATS = {
    "image/avif": "AVIF",
    "image/webp": "WEBP",
    "image/png": "PNG",
    "image/gif": "GIF",
    "image/jpeg": "JPEG",
}


class CodecUnavailableError(RuntimeError):
    """The installed Pillow build cannot encode the requested format."""


def codec_available(pil_format: str) -> bool:
    Image.init()
    return pil_format in Image.SAVE


def open_image(image_bytes: bytes) -> Image.Image:
    """
    Decode image bytes.

    Args:
        image_bytes: Image file bytes

    Returns:
        Loaded PIL image

    Raises:
        ValueError: If image cannot be decoded
    """
    try:
        image = Image.open(BytesIO(image_bytes))
        image.load()
        return image
    except Exception as e:
        raise ValueError(f"Failed to decode image: {e}")


def rasterize_svg(svg_bytes: bytes, width: int) -> Image.Image:
    """
    Render an SVG document directly at `width` pixels wide (aspect preserved).

    Raises:
        ValueError: If the document cannot be parsed or rendered
    """
    try:
        png_bytes = cairosvg.svg2png(bytestring=svg_bytes, output_width=width)
        image = Image.open(BytesIO(png_bytes))
        image.load()
        return image
    except Exception as e:
        raise ValueError(f"Failed to rasterize SVG: {e}")


def resize_to_width(image: Image.Image, width: int) -> Image.Image:
    """
    Resize an image to a target width while preserving aspect ratio.

    Images already at or below the target width are returned unchanged.

    Args:
        image: Source image
        width: Target width in pixels

    Returns:
        Resized image (or the source image when no resize is needed)
    """
    original_width, original_height = image.size
    if original_width <= width:
        return image

    new_height = max(1, round(original_height * (width / original_width)))
    if image.mode == "P":
        image = image.convert("RGBA")
    return image.resize((width, new_height), Image.Resampling.LANCZOS)


def _flatten_for_jpeg(image: Image.Image) -> Image.Image:
    if image.mode in ("RGBA", "LA", "P"):
        # White background for transparency
        if image.mode == "P":
            image = image.convert("RGBA")
        rgb_image = Image.new("RGB", image.size, (255, 255, 255))
        rgb_image.paste(image, mask=image.split()[-1])
        return rgb_image
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def _quantize_for_png(image: Image.Image, quality: int) -> Image.Image:
    # Lower quality means a smaller palette.
    colors = max(2, min(256, round(256 * quality / 100)))
    mode = "RGBA" if image.mode in ("RGBA", "LA", "P") else "RGB"
    return image.convert(mode).quantize(colors=colors, method=Image.Quantize.FASTOCTREE)


def encode_image(image: Image.Image, content_type: str, quality: Optional[int] = None) -> bytes:
    """
    Encode an image to the codec named by `content_type`.

    Args:
        image: Image to encode
        content_type: Target MIME type (see PIL_FORMATS)
        quality: Codec quality 1-100; ignored for GIF, palette size for PNG below 100

    Returns:
        Encoded bytes

    Raises:
        CodecUnavailableError: If Pillow cannot write the target format
        ValueError: If encoding fails
    """
    pil_format = PIL_FORMATS.get(content_type)
    if pil_format is None or not codec_available(pil_format):
        raise CodecUnavailableError(f"No encoder available for {content_type}")

    save_kwargs: dict = {"format": pil_format}
    if pil_format == "JPEG":
        image = _flatten_for_jpeg(image)
        save_kwargs["quality"] = quality or 75
        save_kwargs["optimize"] = True
    elif pil_format in ("WEBP", "AVIF"):
        if image.mode not in ("RGB", "RGBA"):
            image = image.convert("RGBA" if "A" in image.getbands() or image.mode == "P" else "RGB")
        save_kwargs["quality"] = quality or 75
    elif pil_format == "PNG":
        if quality is not None and quality < 100:
            image = _quantize_for_png(image, quality)
        save_kwargs["optimize"] = True

    output = BytesIO()
    try:
        image.save(output, **save_kwargs)
    except Exception as e:
        raise ValueError(f"Failed to encode image as {pil_format}: {e}")
    return output.getvalue()
