"""
Health check endpoint.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from image_optimizer.config import VERSION, get_image_config
from image_optimizer.models import ImageConfig
from image_optimizer.utils.image_derivatives import PIL_FORMATS, codec_available

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request, config: ImageConfig = Depends(get_image_config)):
    """
    Liveness check with uptime and encoder support.

    `status` is "degraded" when a configured output format has no encoder
    in the installed Pillow build.
    """
    startup_time = getattr(request.app.state, "startup_time", None)
    if startup_time is None:
        uptime_seconds = 0
    else:
        uptime_seconds = int((datetime.now(timezone.utc) - startup_time).total_seconds())

    encoders = {fmt: codec_available(PIL_FORMATS[fmt]) for fmt in config.formats}

    return {
        "status": "ok" if all(encoders.values()) else "degraded",
        "uptimeSeconds": uptime_seconds,
        "version": VERSION,
        "encoders": encoders,
    }
