"""
FastAPI application entry point for the Image Optimizer service.
"""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from image_optimizer.config import VERSION, settings
from image_optimizer.routers import health, optimize
from image_optimizer.services.asset_lifecycle import get_asset_lifecycle
from image_optimizer.services.optimizer import get_optimizer
from image_optimizer.utils.errors import (
    APIError,
    ErrorCodes,
    create_error_response,
    handle_exception,
)
from image_optimizer.utils.image_derivatives import PIL_FORMATS, codec_available

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging() -> None:
    """Send every record to stdout and to LOG_DIR/image_optimizer.log."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # Re-imports (reloaders, tests) must not stack handlers
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in (logging.StreamHandler(), logging.FileHandler(log_dir / "image_optimizer.log")):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)


configure_logging()
logger = logging.getLogger("image_optimizer")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request with a correlation ID and echoes it back as X-Request-Id."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id

        client_ip = request.client.host if request.client else "unknown"
        start_time = time.perf_counter()

        logger.info(
            f"RequestStart request={request_id} method={request.method} path={request.url.path} "
            f"query={request.url.query or '-'} client_ip={client_ip}"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"RequestError request={request_id} method={request.method} path={request.url.path} "
                f"error={type(e).__name__}",
                exc_info=True,
            )
            response = JSONResponse(status_code=500, content={"error": "An unexpected error occurred."})

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            f"RequestEnd request={request_id} method={request.method} path={request.url.path} "
            f"status={response.status_code} durationMs={duration_ms} "
            f"contentType={response.headers.get('content-type', '-')} "
            f"bytes={response.headers.get('content-length', '-')}"
        )

        response.headers["X-Request-Id"] = request_id
        return response


def log_startup_config() -> None:
    image_config = settings.image_config()
    logger.info("ConfigStart")
    for name in (
        "LOG_LEVEL",
        "TRACE_CALLS",
        "PUBLIC_DIR",
        "UPLOADS_PREFIX",
        "CACHE_DIR",
        "CACHE_EVICTION",
        "BLUR_SIZE",
    ):
        logger.info(f"Config {name}={getattr(settings, name)}")
    for name, value in image_config.model_dump().items():
        logger.info(f"Config {name.upper()}={value}")

    # Configured formats the installed Pillow cannot write fail every request that negotiates them
    for output_format in image_config.formats:
        if not codec_available(PIL_FORMATS[output_format]):
            logger.warning(f"CodecMissing format={output_format} pillowFormat={PIL_FORMATS[output_format]}")
    logger.info("ConfigEnd")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Record startup time, log the resolved configuration and, on shutdown,
    wait for background cache refreshes that are still running.
    """
    app.state.startup_time = datetime.now(timezone.utc)
    log_startup_config()
    # Host runtimes embedding the app call these hooks on asset changes
    app.state.asset_lifecycle = get_asset_lifecycle()
    Path(settings.CACHE_DIR).mkdir(parents=True, exist_ok=True)
    logger.info("Application startup complete")
    yield
    await get_optimizer().drain()
    logger.info("Application shutdown")


app = FastAPI(
    title="Image Optimizer API",
    description="Resizes, re-encodes and caches stored image assets",
    version=VERSION,
    lifespan=lifespan,
)

# Must be added first so it wraps everything else
app.add_middleware(RequestLoggingMiddleware)

# Read-only surface
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["ETag", "X-Request-Id"],
)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    return create_error_response(exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render framework HTTP errors (unknown routes, etc.) in the same envelope."""
    return handle_exception(exc)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    request_id = getattr(request.state, "request_id", "unknown")
    logger.error(
        f"UnhandledException request={request_id} error={type(exc).__name__} message={str(exc)}",
        exc_info=True,
    )
    return create_error_response(
        APIError(
            code=ErrorCodes.INTERNAL_ERROR,
            message="An unexpected error occurred.",
        )
    )


app.include_router(health.router)
app.include_router(optimize.router, prefix="/api")
