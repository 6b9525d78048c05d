"""
Transformation pipeline: read source -> (pass through animated/vector) -> resize -> encode -> cache.
"""
import asyncio
import logging
from pathlib import PurePosixPath
from typing import NamedTuple, Optional

from image_optimizer.clients.interfaces import IAssetHost
from image_optimizer.models import OptimizeParams, OptimizeResult
from image_optimizer.services.cache_store import DiskCacheStore, compute_etag
from image_optimizer.utils.errors import NotFoundError, ProcessingError
from image_optimizer.utils.image_derivatives import (
    CodecUnavailableError,
    encode_image,
    open_image,
    rasterize_svg,
    resize_to_width,
)
from image_optimizer.utils.image_sniffing import (
    SVG_CONTENT_TYPE,
    content_type_from_url,
    extension_from_content_type,
    is_animated,
    is_vector,
)
from image_optimizer.utils.logging import log_codec_call, trace_calls

logger = logging.getLogger("image_optimizer")

# AVIF looks better than other codecs at the same numeric quality.
AVIF_QUALITY_OFFSET = 20


class TransformOutput(NamedTuple):
    buffer: bytes
    content_type: str
    extension: str


@trace_calls
def transform(
    buffer: bytes,
    content_type: str,
    width: int,
    quality: int,
    output_format: Optional[str],
    dangerously_allow_svg: bool,
) -> TransformOutput:
    """
    Produce the bytes of one variant.

    Vector sources (unless explicitly allowed) and animated sources are passed
    through unmodified. Allowed SVG is rasterized at `width`. Everything else
    is resized to `width` (never upscaled). The result is encoded to the
    negotiated codec, or to the source codec when nothing was negotiated
    (PNG for rasterized SVG).

    Args:
        buffer: Source bytes
        content_type: Declared source MIME type
        width: Target width in pixels
        quality: Requested quality 1-100
        output_format: Negotiated MIME type, or None to keep the source codec
        dangerously_allow_svg: Rasterize SVG instead of serving it as-is

    Returns:
        TransformOutput(buffer, content_type, extension)

    Raises:
        ProcessingError: If decoding or encoding fails
    """
    vector = is_vector(content_type)
    if vector and not dangerously_allow_svg:
        return TransformOutput(buffer, SVG_CONTENT_TYPE, "svg")

    if is_animated(buffer, content_type):
        return TransformOutput(buffer, content_type, extension_from_content_type(content_type))

    raster_type = "image/png" if vector else content_type

    if output_format == "image/avif":
        target, target_quality = "image/avif", max(quality - AVIF_QUALITY_OFFSET, 1)
    elif output_format == "image/webp":
        target, target_quality = "image/webp", quality
    elif raster_type == "image/png":
        target, target_quality = "image/png", quality
    elif raster_type == "image/gif":
        target, target_quality = "image/gif", None
    else:
        target, target_quality = "image/jpeg", quality

    try:
        if vector:
            image = rasterize_svg(buffer, width)
        else:
            image = resize_to_width(open_image(buffer), width)
        encoded = encode_image(image, target, target_quality)
    except CodecUnavailableError as e:
        raise ProcessingError(str(e), details={"codec": target})
    except ValueError as e:
        raise ProcessingError(str(e), details={"sourceType": content_type})

    return TransformOutput(encoded, target, extension_from_content_type(target))


def variant_filename(url: str, extension: str) -> str:
    return f"{PurePosixPath(url.split('?', 1)[0]).stem}.{extension}"


class ImageTransformer:
    """Runs the transformation pipeline and persists every result to the cache."""

    def __init__(self, asset_host: IAssetHost, cache_store: DiskCacheStore):
        """
        Initialize the transformer.

        Args:
            asset_host: Source of original asset bytes
            cache_store: Where variants are written
        """
        self.asset_host = asset_host
        self.cache_store = cache_store

    async def optimize_and_cache(
        self, params: OptimizeParams, request_id: Optional[str] = None
    ) -> OptimizeResult:
        """
        Read the original asset, transform it and write the variant to the cache.

        Pass-through results are cached like transformed ones, under the
        request's format key.

        Raises:
            NotFoundError: If the source asset does not exist
            ProcessingError: If the codec work fails
        """
        source = await self.asset_host.read_asset(params.url)
        if source is None:
            raise NotFoundError(f"Image not found: {params.url}")

        source_type = content_type_from_url(params.url)
        try:
            output, _ = await log_codec_call(
                operation="TRANSFORM",
                url=params.url,
                input_size_bytes=len(source),
                request_id=request_id,
                call_func=lambda: asyncio.to_thread(
                    transform,
                    source,
                    source_type,
                    params.width,
                    params.quality,
                    params.output_format,
                    params.dangerously_allow_svg,
                ),
            )
        except ProcessingError:
            raise
        except Exception as e:
            raise ProcessingError(f"Transformation failed: {type(e).__name__}: {e}")

        try:
            etag = await asyncio.to_thread(
                self.cache_store.set,
                params.url,
                params.width,
                params.quality,
                params.format_key,
                output.buffer,
                output.extension,
                params.minimum_cache_ttl,
            )
        except OSError as e:
            # The bytes are still good; serve them uncached.
            logger.error(
                f"CacheWriteFailed url={params.url} width={params.width} "
                f"format={params.format_key} error={type(e).__name__}: {e}",
                exc_info=True,
            )
            etag = compute_etag(output.buffer)

        return OptimizeResult(
            buffer=output.buffer,
            content_type=output.content_type,
            etag=etag,
            filename=variant_filename(params.url, output.extension),
        )
