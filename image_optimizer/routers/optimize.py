"""
Image optimization endpoints.
"""
import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import Response

from image_optimizer.config import get_image_config, settings
from image_optimizer.models import ImageConfig, PublicImageConfig
from image_optimizer.services.optimizer import ImageOptimizer, get_optimizer
from image_optimizer.utils.errors import APIError, ErrorCodes, ProcessingError
from image_optimizer.utils.request_params import parse_optimize_params

logger = logging.getLogger("image_optimizer")

router = APIRouter(tags=["images"])


def content_disposition(filename: str) -> str:
    """
    Build an inline Content-Disposition value that survives latin-1 header encoding.

    Characters outside printable ASCII, quotes and backslashes become "_" in the
    plain `filename`; the exact name is carried in `filename*` (RFC 6266/5987).
    """
    fallback = "".join(c if " " <= c <= "~" and c not in '"\\' else "_" for c in filename)
    value = f'inline; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return value


@router.get("/next-image")
async def optimize_image(
    request: Request,
    url: Optional[str] = None,
    w: Optional[str] = None,
    q: Optional[str] = None,
    f: Optional[str] = None,
    config: ImageConfig = Depends(get_image_config),
    optimizer: ImageOptimizer = Depends(get_optimizer),
):
    """
    Serve a resized, re-encoded variant of a stored image.

    Args:
        url: Source asset URL under the uploads prefix
        w: Target width, one of the configured sizes
        q: Quality 1-100 (default 75)
        f: Explicit output format override ("webp" or "avif")

    Returns:
        Binary image body, or 304 when If-None-Match matches the variant's ETag
    """
    request_id = getattr(request.state, "request_id", None)
    params = parse_optimize_params(
        url=url,
        w=w,
        q=q,
        f=f,
        accept=request.headers.get("accept"),
        config=config,
        uploads_prefix=settings.UPLOADS_PREFIX,
    )

    try:
        result = await optimizer.optimize(params, request_id=request_id)
    except ProcessingError as e:
        logger.error(
            f"OptimizeFailed request={request_id} url={params.url} width={params.width} "
            f"message={e.message} details={e.details}",
            exc_info=True,
        )
        raise
    except APIError:
        raise
    except Exception as e:
        logger.error(
            f"OptimizeFailed request={request_id} url={params.url} width={params.width} "
            f"error={type(e).__name__}",
            exc_info=True,
        )
        raise APIError(
            code=ErrorCodes.INTERNAL_ERROR,
            message="An unexpected error occurred while optimizing the image.",
            http_status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    headers = {
        "Cache-Control": f"public, max-age={config.minimum_cache_ttl}, immutable",
        "ETag": result.etag,
        "Content-Disposition": content_disposition(result.filename),
    }

    if_none_match = request.headers.get("if-none-match")
    if if_none_match and if_none_match == result.etag:
        return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers=headers)

    return Response(content=result.buffer, media_type=result.content_type, headers=headers)


@router.get("/next-image/config", response_model=PublicImageConfig)
async def get_public_config(config: ImageConfig = Depends(get_image_config)):
    """
    Public image configuration for the requesting side.

    minimumCacheTTL is an operational detail and is not exposed.
    """
    return PublicImageConfig.from_config(config)
