"""
Content-addressed on-disk cache for optimized image variants.

Layout: `<cache_dir>/<sha256(url|width|quality|format_key)>/<max_age>.<expire_at>.<etag>.<ext>`

Each entry directory holds exactly one file whose name carries the entry's
metadata, so a read needs a single directory listing and no side index.
"""
import hashlib
import logging
import os
import shutil
import time
import uuid
from pathlib import Path
from typing import Callable, Literal, NamedTuple, Optional

from image_optimizer.config import settings
from image_optimizer.models import CacheEntry, ImageConfig
from image_optimizer.utils.image_sniffing import content_type_from_extension

logger = logging.getLogger("image_optimizer")

EvictionPolicy = Literal["stale", "eager"]


class CacheMetadata(NamedTuple):
    max_age: int
    expire_at: int
    etag: str
    extension: str


def get_cache_key(url: str, width: int, quality: int, format_key: str) -> str:
    """Deterministic SHA-256 digest of the variant's defining parameters."""
    return hashlib.sha256(f"{url}|{width}|{quality}|{format_key}".encode("utf-8")).hexdigest()


def compute_etag(buffer: bytes) -> str:
    return hashlib.sha256(buffer).hexdigest()[:16]


def parse_cache_filename(filename: str) -> Optional[CacheMetadata]:
    """Parse `{max_age}.{expire_at}.{etag}.{extension}`; None if the name does not fit."""
    parts = filename.split(".")
    if len(parts) < 4:
        return None
    try:
        return CacheMetadata(
            max_age=int(parts[0]),
            expire_at=int(parts[1]),
            etag=parts[2],
            extension=".".join(parts[3:]),
        )
    except ValueError:
        return None


def _now_ms() -> int:
    return int(time.time() * 1000)


class DiskCacheStore:
    """Disk-backed variant cache with expiry metadata embedded in filenames."""

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        eviction: Optional[EvictionPolicy] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        """
        Initialize the cache store.

        Args:
            cache_dir: Cache root directory (default from config)
            eviction: "stale" returns expired entries flagged as stale,
                "eager" deletes them on read and reports a miss (default from config)
            clock: Returns the current time in epoch milliseconds
        """
        self.cache_dir = Path(cache_dir or settings.CACHE_DIR)
        self.eviction: EvictionPolicy = eviction or settings.CACHE_EVICTION
        self._clock = clock

    def entry_dir(self, url: str, width: int, quality: int, format_key: str) -> Path:
        return self.cache_dir / get_cache_key(url, width, quality, format_key)

    def get(self, url: str, width: int, quality: int, format_key: str) -> Optional[CacheEntry]:
        """
        Read a cached variant.

        Returns:
            CacheEntry with `is_stale` computed against the current time, or None
            when there is no usable entry (or it was evicted under the eager policy)

        Raises:
            OSError: On disk failures other than the entry disappearing mid-read
        """
        entry_dir = self.entry_dir(url, width, quality, format_key)
        try:
            filenames = os.listdir(entry_dir)
        except FileNotFoundError:
            return None
        if not filenames:
            return None

        filename = filenames[0]
        meta = parse_cache_filename(filename)
        if meta is None:
            logger.warning(f"CacheCorrupt dir={entry_dir.name} file={filename}")
            return None

        is_stale = self._clock() > meta.expire_at
        if is_stale and self.eviction == "eager":
            shutil.rmtree(entry_dir, ignore_errors=True)
            logger.debug(f"CacheEvicted key={entry_dir.name} url={url} width={width}")
            return None

        try:
            buffer = (entry_dir / filename).read_bytes()
        except FileNotFoundError:
            # Replaced or invalidated between listing and reading
            return None

        return CacheEntry(
            buffer=buffer,
            content_type=content_type_from_extension(meta.extension),
            etag=meta.etag,
            extension=meta.extension,
            max_age=meta.max_age,
            expire_at=meta.expire_at,
            is_stale=is_stale,
        )

    def set(
        self,
        url: str,
        width: int,
        quality: int,
        format_key: str,
        buffer: bytes,
        extension: str,
        max_age: int,
    ) -> str:
        """
        Store a variant, replacing any previous entry for the same key.

        The new entry is written into a scratch directory and swapped into
        place, so readers see either the old file or the new one.

        Returns:
            The entry's etag (short content hash of `buffer`)
        """
        etag = compute_etag(buffer)
        expire_at = self._clock() + max_age * 1000
        filename = f"{max_age}.{expire_at}.{etag}.{extension}"

        entry_dir = self.entry_dir(url, width, quality, format_key)
        scratch_dir = self.cache_dir / f".{entry_dir.name}.{uuid.uuid4().hex}"
        scratch_dir.mkdir(parents=True)
        try:
            (scratch_dir / filename).write_bytes(buffer)
            shutil.rmtree(entry_dir, ignore_errors=True)
            try:
                os.replace(scratch_dir, entry_dir)
            except OSError:
                # A concurrent writer got there first; its content is equivalent.
                logger.debug(f"CacheWriteRace key={entry_dir.name}")
        finally:
            shutil.rmtree(scratch_dir, ignore_errors=True)

        logger.debug(
            f"CacheSet key={entry_dir.name} url={url} width={width} quality={quality} "
            f"format={format_key} etag={etag} maxAge={max_age} sizeBytes={len(buffer)}"
        )
        return etag

    def invalidate_url(self, url: str, config: ImageConfig) -> int:
        """
        Remove every variant that could exist for `url` under `config`.

        Returns:
            Number of entry directories removed
        """
        if not self.cache_dir.exists():
            return 0

        removed = 0
        # Without a configured list any quality in 1-100 may have been requested
        qualities = config.qualities or range(1, 101)
        for width in config.all_sizes:
            for quality in qualities:
                for format_key in config.format_keys:
                    entry_dir = self.entry_dir(url, width, quality, format_key)
                    if entry_dir.exists():
                        shutil.rmtree(entry_dir, ignore_errors=True)
                        removed += 1

        logger.info(f"CacheInvalidated url={url} removed={removed}")
        return removed

    def clear(self) -> None:
        """Remove the whole cache root."""
        shutil.rmtree(self.cache_dir, ignore_errors=True)
        logger.info(f"CacheCleared dir={self.cache_dir}")


# Global singleton instance
_cache_store: Optional[DiskCacheStore] = None


def get_cache_store() -> DiskCacheStore:
    """Get the global cache store instance."""
    global _cache_store
    if _cache_store is None:
        _cache_store = DiskCacheStore()
    return _cache_store
