"""
Capability interfaces for the host content-management runtime.
"""
from abc import ABC, abstractmethod
from typing import Optional


class IAssetHost(ABC):
    """Interface to the runtime that owns stored assets and their records."""

    @abstractmethod
    async def read_asset(self, url: str) -> Optional[bytes]:
        """
        Read the original bytes of a stored asset.

        Args:
            url: Public asset URL (e.g. "/uploads/photo.jpg")

        Returns:
            Asset bytes, or None if no such asset exists
        """
        pass

    @abstractmethod
    async def update_record_field(self, record_id: str, field: str, value: str) -> None:
        """
        Set one field on a host-owned asset record.

        Args:
            record_id: Record identifier
            field: Field name (e.g. "blurDataURL")
            value: New value

        Raises:
            KeyError: If the record does not exist
        """
        pass
