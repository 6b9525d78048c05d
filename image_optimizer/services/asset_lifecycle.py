"""
Asset lifecycle hooks called by the host runtime when assets change.

Created assets get a blur placeholder stored on their record; updated and
deleted assets have every cached variant invalidated.
"""
import asyncio
import logging
from typing import Optional

from image_optimizer.clients.interfaces import IAssetHost
from image_optimizer.clients.local_assets import get_asset_host
from image_optimizer.config import get_image_config
from image_optimizer.models import AssetRecord, ImageConfig
from image_optimizer.services.blur_placeholder import BlurPlaceholderService
from image_optimizer.services.cache_store import DiskCacheStore, get_cache_store

logger = logging.getLogger("image_optimizer")

BLUR_FIELD = "blurDataURL"


class AssetLifecycle:
    """Reacts to asset create/update/delete events."""

    def __init__(
        self,
        asset_host: IAssetHost,
        cache_store: DiskCacheStore,
        config: ImageConfig,
        blur_service: Optional[BlurPlaceholderService] = None,
    ):
        self.asset_host = asset_host
        self.cache_store = cache_store
        self.config = config
        self.blur_service = blur_service or BlurPlaceholderService(asset_host)

    async def on_asset_created(self, record: AssetRecord) -> Optional[str]:
        """
        Compute and store a blur placeholder unless the record already has one.

        Never raises: a missing placeholder must not block ingestion.

        Returns:
            The record's blur data URL, or None
        """
        if record.blur_data_url:
            return record.blur_data_url
        return await self._store_blur(record)

    async def on_asset_updated(self, record: AssetRecord) -> Optional[str]:
        """Drop cached variants of the asset and recompute its placeholder."""
        await self._invalidate(record)
        return await self._store_blur(record)

    async def on_asset_deleted(self, record: AssetRecord) -> None:
        await self._invalidate(record)

    async def _invalidate(self, record: AssetRecord) -> None:
        try:
            await asyncio.to_thread(self.cache_store.invalidate_url, record.url, self.config)
        except OSError as e:
            logger.error(f"CacheInvalidateFailed id={record.id} url={record.url} error={e}")

    async def _store_blur(self, record: AssetRecord) -> Optional[str]:
        try:
            blur_data_url = await self.blur_service.generate(record.url, record.mime)
        except Exception as e:
            logger.error(
                f"BlurPlaceholderFailed id={record.id} url={record.url} error={type(e).__name__}: {e}",
                exc_info=True,
            )
            return None

        if blur_data_url is None:
            logger.debug(f"BlurPlaceholderSkipped id={record.id} mime={record.mime}")
            return None

        try:
            await self.asset_host.update_record_field(record.id, BLUR_FIELD, blur_data_url)
        except Exception as e:
            logger.error(f"RecordUpdateFailed id={record.id} field={BLUR_FIELD} error={type(e).__name__}: {e}")
            return None

        logger.info(f"BlurPlaceholderStored id={record.id} url={record.url}")
        return blur_data_url


# Global singleton instance
_asset_lifecycle: Optional[AssetLifecycle] = None


def get_asset_lifecycle() -> AssetLifecycle:
    """Get the global lifecycle hooks, wired to the shared asset host and cache store."""
    global _asset_lifecycle
    if _asset_lifecycle is None:
        _asset_lifecycle = AssetLifecycle(
            asset_host=get_asset_host(),
            cache_store=get_cache_store(),
            config=get_image_config(),
        )
    return _asset_lifecycle
