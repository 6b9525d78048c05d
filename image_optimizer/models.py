"""
Pydantic models for image configuration, optimization requests and cache entries.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Output codecs the optimizer can negotiate, in preference order.
SUPPORTED_OUTPUT_FORMATS = ("image/avif", "image/webp")

# Cache key format component used when no transcoding was negotiated.
ORIGINAL_FORMAT_KEY = "original"

DEFAULT_QUALITY = 75


def format_key_for(output_format: Optional[str]) -> str:
    """Map a negotiated MIME type (or None) to the short name used in cache keys."""
    if not output_format:
        return ORIGINAL_FORMAT_KEY
    return output_format.replace("image/", "")


class ImageConfig(BaseModel):
    """Resolved image configuration. Size lists are always kept sorted ascending."""

    model_config = ConfigDict(frozen=True)

    device_sizes: List[int] = Field(default=[640, 750, 828, 1080, 1200, 1920, 2048, 3840])
    image_sizes: List[int] = Field(default=[32, 48, 64, 96, 128, 256, 384])
    qualities: Optional[List[int]] = Field(default=[75])
    formats: List[str] = Field(default=["image/webp"])
    minimum_cache_ttl: int = 14400
    dangerously_allow_svg: bool = False

    @field_validator("device_sizes", "image_sizes")
    @classmethod
    def _sort_sizes(cls, value: List[int]) -> List[int]:
        return sorted(set(value))

    @field_validator("device_sizes")
    @classmethod
    def _require_device_size(cls, value: List[int]) -> List[int]:
        # Width resolution anchors on the smallest device size
        if not value:
            raise ValueError("device_sizes must not be empty")
        return value

    @field_validator("qualities")
    @classmethod
    def _sort_qualities(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        return sorted(set(value)) if value is not None else None

    @property
    def all_sizes(self) -> List[int]:
        return sorted(set(self.device_sizes) | set(self.image_sizes))

    @property
    def format_keys(self) -> List[str]:
        """Every format key a variant of this config can be cached under."""
        return [format_key_for(fmt) for fmt in self.formats] + [ORIGINAL_FORMAT_KEY]


class PublicImageConfig(BaseModel):
    """Response for GET /api/next-image/config (minimumCacheTTL is deliberately withheld)."""

    deviceSizes: List[int]
    imageSizes: List[int]
    qualities: Optional[List[int]] = None
    formats: List[str]
    dangerouslyAllowSVG: bool

    @classmethod
    def from_config(cls, config: ImageConfig) -> "PublicImageConfig":
        return cls(
            deviceSizes=config.device_sizes,
            imageSizes=config.image_sizes,
            qualities=config.qualities,
            formats=config.formats,
            dangerouslyAllowSVG=config.dangerously_allow_svg,
        )


class OptimizeParams(BaseModel):
    """Fully resolved, immutable parameters of a single optimization request."""

    model_config = ConfigDict(frozen=True)

    url: str
    width: int = Field(gt=0)
    quality: int = Field(ge=1, le=100)
    output_format: Optional[str] = None
    minimum_cache_ttl: int
    dangerously_allow_svg: bool = False

    @property
    def format_key(self) -> str:
        return format_key_for(self.output_format)

    @property
    def variant(self) -> tuple:
        """Identity of the cached variant these parameters produce."""
        return (self.url, self.width, self.quality, self.format_key)


class OptimizeResult(BaseModel):
    """Bytes and response metadata for one served variant."""

    buffer: bytes
    content_type: str
    etag: str
    filename: str


class CacheEntry(BaseModel):
    """A cached variant read back from disk."""

    buffer: bytes
    content_type: str
    etag: str
    extension: str
    max_age: int
    expire_at: int = Field(description="Absolute expiry, epoch milliseconds")
    is_stale: bool


class WidthCandidates(BaseModel):
    """Resolved candidate widths and how they are labeled in a source set."""

    widths: List[int]
    kind: Literal["w", "x"]


class ImgAttrs(BaseModel):
    """Responsive image attributes computed on the requesting side."""

    src: str
    src_set: Optional[str] = None
    sizes: Optional[str] = None


class AssetRecord(BaseModel):
    """Host-owned record describing a stored asset."""

    id: str
    url: str
    mime: str
    blur_data_url: Optional[str] = None
