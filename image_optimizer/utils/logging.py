"""
Logging utilities for codec call tracking, once-only warnings, and method tracing.
"""
import functools
import inspect
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Optional, Set, TypeVar

from image_optimizer.config import settings

logger = logging.getLogger("image_optimizer")

F = TypeVar("F", bound=Callable[..., Any])


def _summarize_args(args: tuple, kwargs: dict) -> str:
    """Render call arguments without dumping image buffers into the log."""
    summary = []
    for i, arg in enumerate(args):
        if isinstance(arg, (str, int, float, bool, type(None))):
            summary.append(f"arg{i}={arg}")
        elif isinstance(arg, (bytes, bytearray)):
            summary.append(f"arg{i}=<bytes:{len(arg)}>")
        else:
            summary.append(f"arg{i}=<{type(arg).__name__}>")

    for key, value in kwargs.items():
        if isinstance(value, (bytes, bytearray)):
            summary.append(f"{key}=<bytes:{len(value)}>")
        elif isinstance(value, (str, int, float, bool, type(None))):
            summary.append(f"{key}={value}")
        else:
            summary.append(f"{key}=<{type(value).__name__}>")
    return ", ".join(summary)


def trace_calls(func: F) -> F:
    """
    Decorator to log method entry/exit when TRACE_CALLS is enabled.

    Logs function name, args summary (byte buffers reduced to their length), and duration.
    Only active when TRACE_CALLS=true at import time.
    """
    if not settings.TRACE_CALLS:
        return func

    func_name = f"{func.__module__}.{func.__qualname__}"

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger.debug(f"[TRACE] ENTER {func_name}({_summarize_args(args, kwargs)})")
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration_ms = int((time.perf_counter() - start) * 1000)
                logger.debug(f"[TRACE] EXIT {func_name} durationMs={duration_ms} error={type(e).__name__}")
                raise
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.debug(f"[TRACE] EXIT {func_name} durationMs={duration_ms}")
            return result

        return async_wrapper  # type: ignore

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        logger.debug(f"[TRACE] ENTER {func_name}({_summarize_args(args, kwargs)})")
        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.debug(f"[TRACE] EXIT {func_name} durationMs={duration_ms} error={type(e).__name__}")
            raise
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(f"[TRACE] EXIT {func_name} durationMs={duration_ms}")
        return result

    return sync_wrapper  # type: ignore


async def log_codec_call(
    operation: str,
    url: str,
    input_size_bytes: int,
    call_func: Callable[[], Awaitable[Any]],
    request_id: Optional[str] = None,
) -> tuple[Any, int]:
    """
    Log a codec operation (decode/resize/encode) and execute it.

    Args:
        operation: Name of the operation (e.g., "TRANSFORM", "BLUR")
        url: Source asset URL
        input_size_bytes: Size of the source buffer
        call_func: Async function performing the codec work
        request_id: Request correlation ID

    Returns:
        Tuple of (result, duration_ms)
    """
    correlation = f"request={request_id} " if request_id else ""
    logger.info(
        f"CodecCall {correlation}op={operation} url={url} inputSizeBytes={input_size_bytes}"
    )

    call_start = time.perf_counter()
    try:
        result = await call_func()
    except Exception as e:
        duration_ms = int((time.perf_counter() - call_start) * 1000)
        logger.error(
            f"CodecResult {correlation}op={operation} url={url} durationMs={duration_ms} "
            f"error={type(e).__name__}",
            exc_info=True,
        )
        raise

    duration_ms = int((time.perf_counter() - call_start) * 1000)
    output = result[0] if isinstance(result, tuple) else result
    output_size = len(output) if isinstance(output, (bytes, bytearray)) else 0
    logger.info(
        f"CodecResult {correlation}op={operation} url={url} durationMs={duration_ms} "
        f"outputSizeBytes={output_size}"
    )
    return result, duration_ms


class WarnOnce:
    """Emit each distinct warning message at most once for the lifetime of this object."""

    def __init__(self, target: Optional[logging.Logger] = None):
        self._seen: Set[str] = set()
        self._lock = threading.Lock()
        self._logger = target or logger

    def __call__(self, message: str) -> bool:
        with self._lock:
            if message in self._seen:
                return False
            self._seen.add(message)
        self._logger.warning(message)
        return True

    def reset(self) -> None:
        with self._lock:
            self._seen.clear()
