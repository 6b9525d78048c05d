"""
Tests for query parameter validation and format negotiation.
"""
import pytest

from image_optimizer.models import ImageConfig
from image_optimizer.utils.errors import ValidationError
from image_optimizer.utils.request_params import (
    negotiate_format,
    parse_optimize_params,
    resolve_output_format,
    validate_quality,
    validate_source_url,
    validate_width,
)

BOTH = ["image/avif", "image/webp"]


@pytest.mark.parametrize(
    "accept,formats,expected",
    [
        ("image/avif,image/webp,*/*", BOTH, "image/avif"),
        ("image/webp,*/*", BOTH, "image/webp"),
        ("image/avif,image/webp", ["image/webp"], "image/webp"),
        ("image/avif", ["image/webp"], None),
        ("*/*", BOTH, None),
        (None, BOTH, None),
        ("image/avif,image/webp", [], None),
    ],
)
def test_negotiate_format(accept, formats, expected):
    assert negotiate_format(accept, formats) == expected


def test_override_picks_configured_format():
    assert resolve_output_format("webp", "image/avif", BOTH) == "image/webp"
    assert resolve_output_format("AVIF", None, BOTH) == "image/avif"


def test_override_for_unconfigured_format_falls_back_to_negotiation():
    assert resolve_output_format("avif", "image/webp", ["image/webp"]) == "image/webp"
    assert resolve_output_format("png", None, ["image/webp"]) is None


def test_source_url_required():
    with pytest.raises(ValidationError) as exc_info:
        validate_source_url(None, "/uploads/")
    assert exc_info.value.message == '"url" query parameter is required'
    assert exc_info.value.http_status == 400


def test_source_url_prefix_enforced():
    with pytest.raises(ValidationError) as exc_info:
        validate_source_url("/etc/passwd", "/uploads/")
    assert "/uploads/" in exc_info.value.message


def test_source_url_parent_segments_rejected():
    with pytest.raises(ValidationError):
        validate_source_url("/uploads/../secrets.jpg", "/uploads/")


def test_source_url_accepted():
    assert validate_source_url("/uploads/photo..final.jpg", "/uploads/") == "/uploads/photo..final.jpg"


def test_width_must_be_configured(image_config):
    assert validate_width("640", image_config) == 640
    assert validate_width("64", image_config) == 64

    with pytest.raises(ValidationError) as exc_info:
        validate_width("100", image_config)
    assert exc_info.value.message == '"w" must be one of: 64, 128, 640, 1080'


@pytest.mark.parametrize("raw", [None, "", "abc", "12.5", "-64", "64px"])
def test_width_must_be_integer(image_config, raw):
    with pytest.raises(ValidationError):
        validate_width(raw, image_config)


def test_quality_defaults_to_75():
    assert validate_quality(None) == 75
    assert validate_quality("") == 75


@pytest.mark.parametrize("raw,expected", [("1", 1), ("50", 50), ("100", 100)])
def test_quality_in_range(raw, expected):
    assert validate_quality(raw) == expected


@pytest.mark.parametrize("raw", ["0", "101", "abc", "7.5"])
def test_quality_out_of_range(raw):
    with pytest.raises(ValidationError) as exc_info:
        validate_quality(raw)
    assert exc_info.value.message == '"q" must be between 1 and 100'


def test_parse_optimize_params(image_config):
    params = parse_optimize_params(
        url="/uploads/photo.jpg",
        w="640",
        q="80",
        f=None,
        accept="image/webp,*/*",
        config=image_config,
        uploads_prefix="/uploads/",
    )

    assert params.url == "/uploads/photo.jpg"
    assert params.width == 640
    assert params.quality == 80
    assert params.output_format == "image/webp"
    assert params.format_key == "webp"
    assert params.minimum_cache_ttl == 60
    assert params.variant == ("/uploads/photo.jpg", 640, 80, "webp")


def test_parse_optimize_params_without_negotiated_format(image_config):
    params = parse_optimize_params(
        url="/uploads/photo.jpg",
        w="64",
        q=None,
        f=None,
        accept="image/jpeg",
        config=image_config,
        uploads_prefix="/uploads/",
    )
    assert params.output_format is None
    assert params.format_key == "original"


def test_parse_optimize_params_carries_svg_flag():
    config = ImageConfig(device_sizes=[640], image_sizes=[], dangerously_allow_svg=True)
    params = parse_optimize_params("/uploads/logo.svg", "640", None, None, None, config, "/uploads/")
    assert params.dangerously_allow_svg is True
