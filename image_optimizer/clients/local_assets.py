"""
Local-disk asset host: serves uploads from the public directory and keeps
asset records in memory.
"""
import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

from image_optimizer.clients.interfaces import IAssetHost
from image_optimizer.config import settings

logger = logging.getLogger("image_optimizer")


class LocalAssetHost(IAssetHost):
    """Asset host backed by files under a public directory."""

    def __init__(self, public_dir: Optional[str] = None):
        """
        Initialize the asset host.

        Args:
            public_dir: Directory asset URLs resolve against (default from config)
        """
        self.public_dir = Path(public_dir or settings.PUBLIC_DIR).resolve()
        self._records: Dict[str, Dict[str, str]] = {}

    def resolve(self, url: str) -> Optional[Path]:
        """Map a URL to a file path inside the public directory, or None if it escapes it."""
        relative = url.split("?", 1)[0].lstrip("/")
        candidate = (self.public_dir / relative).resolve()
        if not candidate.is_relative_to(self.public_dir):
            logger.warning(f"AssetPathRejected url={url}")
            return None
        return candidate

    async def read_asset(self, url: str) -> Optional[bytes]:
        path = self.resolve(url)
        if path is None or not path.is_file():
            return None
        return await asyncio.to_thread(path.read_bytes)

    async def update_record_field(self, record_id: str, field: str, value: str) -> None:
        if record_id not in self._records:
            raise KeyError(f"Record {record_id} not found")
        self._records[record_id][field] = value
        logger.debug(f"RecordUpdated id={record_id} field={field}")

    def put_record(self, record_id: str, **fields: str) -> None:
        self._records[record_id] = dict(fields)

    def get_record(self, record_id: str) -> Optional[Dict[str, str]]:
        return self._records.get(record_id)


# Global singleton instance
_asset_host: Optional[LocalAssetHost] = None


def get_asset_host() -> LocalAssetHost:
    """Get the global asset host instance."""
    global _asset_host
    if _asset_host is None:
        _asset_host = LocalAssetHost()
    return _asset_host
