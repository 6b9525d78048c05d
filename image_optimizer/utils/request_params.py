"""
Validation of optimize-request query parameters and output format negotiation.
"""
import re
from typing import Iterable, Optional

from image_optimizer.models import (
    DEFAULT_QUALITY,
    SUPPORTED_OUTPUT_FORMATS,
    ImageConfig,
    OptimizeParams,
)
from image_optimizer.utils.errors import ValidationError

FORMAT_OVERRIDES = {
    "webp": "image/webp",
    "avif": "image/avif",
}

_INTEGER_RE = re.compile(r"^\s*\d+\s*$")


def negotiate_format(accept: Optional[str], formats: Iterable[str]) -> Optional[str]:
    """
    Pick an output codec from the client's Accept header.

    AVIF is preferred over WebP; a codec must be both configured and accepted.

    Returns:
        MIME type of the chosen codec, or None to keep the source codec
    """
    accept = accept or ""
    configured = set(formats)
    for mime in SUPPORTED_OUTPUT_FORMATS:
        if mime in configured and mime in accept:
            return mime
    return None


def resolve_output_format(
    override: Optional[str], accept: Optional[str], formats: Iterable[str]
) -> Optional[str]:
    """Apply an explicit `f` override if it names a configured codec, else negotiate."""
    formats = list(formats)
    if override:
        mime = FORMAT_OVERRIDES.get(override.lower())
        if mime in formats:
            return mime
    return negotiate_format(accept, formats)


def _parse_int(value: Optional[str]) -> Optional[int]:
    if value is None or not _INTEGER_RE.match(value):
        return None
    return int(value)


def validate_source_url(url: Optional[str], uploads_prefix: str) -> str:
    if not url:
        raise ValidationError('"url" query parameter is required')
    if not url.startswith(uploads_prefix):
        raise ValidationError(f'"url" must start with {uploads_prefix}')
    if ".." in url.split("?", 1)[0].split("/"):
        raise ValidationError('"url" must not contain ".." segments')
    return url


def validate_width(w: Optional[str], config: ImageConfig) -> int:
    width = _parse_int(w)
    all_sizes = config.all_sizes
    if width is None or width not in all_sizes:
        raise ValidationError(
            f'"w" must be one of: {", ".join(str(s) for s in all_sizes)}',
            details={"allowed": all_sizes},
        )
    return width


def validate_quality(q: Optional[str]) -> int:
    if q is None or q == "":
        return DEFAULT_QUALITY
    quality = _parse_int(q)
    if quality is None or quality < 1 or quality > 100:
        raise ValidationError('"q" must be between 1 and 100')
    return quality


def parse_optimize_params(
    url: Optional[str],
    w: Optional[str],
    q: Optional[str],
    f: Optional[str],
    accept: Optional[str],
    config: ImageConfig,
    uploads_prefix: str,
) -> OptimizeParams:
    """
    Validate raw query values and resolve them into OptimizeParams.

    Raises:
        ValidationError: On missing or out-of-domain parameters
    """
    return OptimizeParams(
        url=validate_source_url(url, uploads_prefix),
        width=validate_width(w, config),
        quality=validate_quality(q),
        output_format=resolve_output_format(f, accept, config.formats),
        minimum_cache_ttl=config.minimum_cache_ttl,
        dangerously_allow_svg=config.dangerously_allow_svg,
    )
