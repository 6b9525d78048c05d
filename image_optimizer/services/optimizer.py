"""
Retrieval and revalidation coordinator.

Uses stale-while-revalidate: expired cache entries are served immediately
while a background re-optimization refreshes the cache for the next request.
"""
import asyncio
import logging
import threading
from typing import Optional, Set

from image_optimizer.clients.local_assets import get_asset_host
from image_optimizer.models import OptimizeParams, OptimizeResult
from image_optimizer.services.cache_store import DiskCacheStore, get_cache_store
from image_optimizer.services.transformer import ImageTransformer, variant_filename

logger = logging.getLogger("image_optimizer")


class RevalidationTracker:
    """Process-wide set of variants currently being refreshed in the background."""

    def __init__(self):
        self._in_flight: Set[tuple] = set()
        self._lock = threading.Lock()

    def try_acquire(self, variant: tuple) -> bool:
        """Mark `variant` as in flight. Returns False if it already was."""
        with self._lock:
            if variant in self._in_flight:
                return False
            self._in_flight.add(variant)
            return True

    def release(self, variant: tuple) -> None:
        with self._lock:
            self._in_flight.discard(variant)

    def __contains__(self, variant: tuple) -> bool:
        with self._lock:
            return variant in self._in_flight

    def __len__(self) -> int:
        with self._lock:
            return len(self._in_flight)


class ImageOptimizer:
    """Serves variants from the cache, transforming on a miss and refreshing stale hits."""

    def __init__(
        self,
        transformer: ImageTransformer,
        cache_store: DiskCacheStore,
        tracker: Optional[RevalidationTracker] = None,
    ):
        self.transformer = transformer
        self.cache_store = cache_store
        self.tracker = tracker or RevalidationTracker()
        # Strong references so detached tasks are not garbage collected mid-flight
        self._background: Set[asyncio.Task] = set()

    async def optimize(self, params: OptimizeParams, request_id: Optional[str] = None) -> OptimizeResult:
        """
        Return the variant described by `params`.

        A fresh hit returns cached bytes. A stale hit returns cached bytes and
        schedules at most one background refresh per variant. A miss (including
        an unreadable cache) transforms synchronously; its errors propagate.
        """
        try:
            cached = await asyncio.to_thread(self.cache_store.get, *params.variant)
        except OSError as e:
            logger.warning(
                f"CacheReadFailed url={params.url} width={params.width} "
                f"format={params.format_key} error={type(e).__name__}: {e}"
            )
            cached = None

        if cached is not None:
            logger.info(
                f"CacheHit request={request_id} url={params.url} width={params.width} "
                f"quality={params.quality} format={params.format_key} stale={cached.is_stale}"
            )
            if cached.is_stale:
                self._schedule_revalidation(params)
            return OptimizeResult(
                buffer=cached.buffer,
                content_type=cached.content_type,
                etag=cached.etag,
                filename=variant_filename(params.url, cached.extension),
            )

        logger.info(
            f"CacheMiss request={request_id} url={params.url} width={params.width} "
            f"quality={params.quality} format={params.format_key}"
        )
        return await self.transformer.optimize_and_cache(params, request_id=request_id)

    def _schedule_revalidation(self, params: OptimizeParams) -> bool:
        variant = params.variant
        if not self.tracker.try_acquire(variant):
            logger.debug(f"RevalidateSkipped url={params.url} width={params.width} reason=in_flight")
            return False

        try:
            task = asyncio.create_task(self._revalidate(params))
        except RuntimeError:
            self.tracker.release(variant)
            raise
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    async def _revalidate(self, params: OptimizeParams) -> None:
        """Background re-optimization. Errors are logged and never reach a caller."""
        logger.info(
            f"RevalidateStart url={params.url} width={params.width} "
            f"quality={params.quality} format={params.format_key}"
        )
        try:
            result = await self.transformer.optimize_and_cache(params)
            logger.info(f"RevalidateEnd url={params.url} width={params.width} etag={result.etag}")
        except Exception as e:
            logger.error(
                f"RevalidateFailed url={params.url} width={params.width} "
                f"error={type(e).__name__}: {e}",
                exc_info=True,
            )
        finally:
            self.tracker.release(params.variant)

    async def drain(self) -> None:
        """Wait for background refreshes that are currently running."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)


# Global singleton instance
_optimizer: Optional[ImageOptimizer] = None


def get_optimizer() -> ImageOptimizer:
    """Get the global optimizer instance."""
    global _optimizer
    if _optimizer is None:
        cache_store = get_cache_store()
        _optimizer = ImageOptimizer(
            transformer=ImageTransformer(get_asset_host(), cache_store),
            cache_store=cache_store,
        )
    return _optimizer
