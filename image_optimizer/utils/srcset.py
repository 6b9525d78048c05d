"""
Candidate-width resolution and responsive image attributes for the requesting side.

Nothing here touches the network or the cache: given the public image
configuration, these functions decide which variant widths a display surface
should ask the optimizer for and how to label them in a source set.
"""
import re
from typing import Callable, Optional
from urllib.parse import quote

from image_optimizer.models import DEFAULT_QUALITY, ImageConfig, ImgAttrs, WidthCandidates
from image_optimizer.utils.logging import WarnOnce

OPTIMIZE_PATH = "/api/next-image"

_VIEWPORT_WIDTH_RE = re.compile(r"(^|\s)(1?\d?\d)vw")

# loader(src=..., width=..., quality=...) -> URL of one variant
ImageLoader = Callable[..., str]


def get_widths(config: ImageConfig, width: Optional[int], sizes: Optional[str]) -> WidthCandidates:
    """
    Resolve which widths to request for an image.

    Args:
        config: Image configuration (size lists sorted ascending)
        width: Intrinsic display width in CSS pixels, if known
        sizes: Responsive `sizes` hint, if any

    Returns:
        WidthCandidates: kind "w" labels candidates by pixel width, kind "x" by density
    """
    all_sizes = config.all_sizes
    device_sizes = config.device_sizes

    if sizes:
        percent_sizes = [int(match.group(2)) for match in _VIEWPORT_WIDTH_RE.finditer(sizes)]
        if percent_sizes:
            smallest_ratio = min(percent_sizes) * 0.01
            return WidthCandidates(
                widths=[s for s in all_sizes if s >= device_sizes[0] * smallest_ratio],
                kind="w",
            )
        return WidthCandidates(widths=all_sizes, kind="w")

    if width is None:
        return WidthCandidates(widths=device_sizes, kind="w")

    widths: list[int] = []
    for target in (width, width * 2):
        candidate = next((s for s in all_sizes if s >= target), all_sizes[-1])
        if candidate not in widths:
            widths.append(candidate)
    return WidthCandidates(widths=widths, kind="x")


def build_optimize_url(base: str, src: str, width: int, quality: Optional[int] = None) -> str:
    """Build the optimizer URL for one variant of `src`."""
    q = quality or DEFAULT_QUALITY
    # Leave the RFC 2396 mark characters unescaped
    encoded = quote(src, safe="!*'()")
    return f"{base}{OPTIMIZE_PATH}?url={encoded}&w={width}&q={q}"


def create_loader(base_url: str = "") -> ImageLoader:
    """Create a loader that points at the optimizer mounted under `base_url`."""
    base = base_url.rstrip("/")

    def loader(src: str, width: int, quality: Optional[int] = None) -> str:
        return build_optimize_url(base, src, width, quality)

    return loader


def _is_unoptimizable(config: ImageConfig, src: str) -> bool:
    if not src or src.startswith(("data:", "blob:")):
        return True
    return not config.dangerously_allow_svg and src.split("?", 1)[0].endswith(".svg")


def generate_img_attrs(
    config: ImageConfig,
    src: str,
    width: Optional[int] = None,
    quality: Optional[int] = None,
    sizes: Optional[str] = None,
    loader: Optional[ImageLoader] = None,
    unoptimized: bool = False,
    warn_once: Optional[WarnOnce] = None,
) -> ImgAttrs:
    """
    Compute `src`, `srcset` and `sizes` for an image.

    Sources that cannot go through the optimizer (data/blob URLs, SVG when not
    allowed) are returned untouched. The plain `src` always points at the
    largest resolved width.
    """
    if unoptimized or _is_unoptimizable(config, src):
        return ImgAttrs(src=src)

    if warn_once is not None and quality and config.qualities and quality not in config.qualities:
        suggested = sorted(set(config.qualities) | {quality})
        warn_once(
            f'Image with src "{src}" is using quality "{quality}" which is not configured in '
            f"qualities {config.qualities}. Please update your config to {suggested}."
        )

    loader = loader or create_loader()
    candidates = get_widths(config, width, sizes)

    descriptors = []
    for i, w in enumerate(candidates.widths):
        label = w if candidates.kind == "w" else i + 1
        descriptors.append(f"{loader(src=src, width=w, quality=quality)} {label}{candidates.kind}")

    return ImgAttrs(
        src=loader(src=src, width=candidates.widths[-1], quality=quality),
        src_set=", ".join(descriptors),
        sizes="100vw" if not sizes and candidates.kind == "w" else sizes,
    )
