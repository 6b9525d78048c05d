"""
Configuration management for the Image Optimizer service.

Environment variable loading precedence:
1. Real environment variables (exported in shell) - highest priority
2. `.env.local` file (for local development only, gitignored)
3. Built-in defaults - lowest priority

List-valued settings (DEVICE_SIZES, IMAGE_SIZES, QUALITIES, FORMATS) are read
from the environment as JSON, e.g. `DEVICE_SIZES='[640, 1080]'`.
"""
from typing import List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from image_optimizer.models import SUPPORTED_OUTPUT_FORMATS, ImageConfig

VERSION = "0.1.0"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_DIR: str = Field(default="logs", description="Directory for the log file")
    TRACE_CALLS: bool = Field(default=False, description="Log entry/exit of traced functions")

    # Asset storage
    PUBLIC_DIR: str = Field(default="public", description="Directory the asset URLs resolve against")
    UPLOADS_PREFIX: str = Field(default="/uploads/", description="Required prefix for source URLs")

    # Variant cache
    CACHE_DIR: str = Field(default=".cache/next-image", description="Root of the on-disk variant cache")
    CACHE_EVICTION: Literal["stale", "eager"] = Field(
        default="stale", description="Serve stale entries and revalidate, or evict on expiry"
    )

    # Image configuration
    DEVICE_SIZES: List[int] = Field(default=[640, 750, 828, 1080, 1200, 1920, 2048, 3840])
    IMAGE_SIZES: List[int] = Field(default=[32, 48, 64, 96, 128, 256, 384])
    QUALITIES: Optional[List[int]] = Field(default=[75])
    FORMATS: List[str] = Field(default=["image/webp"])
    MINIMUM_CACHE_TTL: int = Field(default=14400, description="Variant max-age in seconds")
    DANGEROUSLY_ALLOW_SVG: bool = Field(default=False)

    # Blur placeholder width in pixels
    BLUR_SIZE: int = Field(default=8, ge=1)

    model_config = SettingsConfigDict(
        # Precedence: shell env vars > .env.local > .env > defaults
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @field_validator("DEVICE_SIZES", "IMAGE_SIZES")
    @classmethod
    def _check_sizes(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("size lists must not be empty")
        if any(size <= 0 for size in value):
            raise ValueError("sizes must be positive integers")
        return value

    @field_validator("QUALITIES")
    @classmethod
    def _check_qualities(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is not None and any(q < 1 or q > 100 for q in value):
            raise ValueError("qualities must be between 1 and 100")
        return value

    @field_validator("FORMATS")
    @classmethod
    def _check_formats(cls, value: List[str]) -> List[str]:
        unknown = [fmt for fmt in value if fmt not in SUPPORTED_OUTPUT_FORMATS]
        if unknown:
            raise ValueError(
                f"unsupported formats {unknown}; allowed: {', '.join(SUPPORTED_OUTPUT_FORMATS)}"
            )
        return value

    @field_validator("MINIMUM_CACHE_TTL")
    @classmethod
    def _check_ttl(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("MINIMUM_CACHE_TTL must be a positive number of seconds")
        return value

    def image_config(self) -> ImageConfig:
        """Build the image configuration used by validation, caching and width resolution."""
        return ImageConfig(
            device_sizes=self.DEVICE_SIZES,
            image_sizes=self.IMAGE_SIZES,
            qualities=self.QUALITIES,
            formats=self.FORMATS,
            minimum_cache_ttl=self.MINIMUM_CACHE_TTL,
            dangerously_allow_svg=self.DANGEROUSLY_ALLOW_SVG,
        )


settings = Settings()


def get_image_config() -> ImageConfig:
    """Image configuration for the current settings."""
    return settings.image_config()
