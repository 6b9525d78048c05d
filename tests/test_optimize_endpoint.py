"""
Tests for the image optimization HTTP endpoints.
"""
import io
from unittest.mock import patch

from PIL import Image

from conftest import SVG_BYTES, make_image_bytes
from image_optimizer.config import get_image_config
from image_optimizer.main import app
from image_optimizer.models import ImageConfig
from image_optimizer.routers.optimize import content_disposition
from image_optimizer.utils.errors import GENERIC_PROCESSING_MESSAGE, ProcessingError

ENDPOINT = "/api/next-image"
WEBP_ACCEPT = {"Accept": "image/webp,*/*"}


def get_variant(client, headers=None, **params):
    query = {"url": "/uploads/photo.jpg", "w": "640", "q": "75"}
    query.update(params)
    query = {k: v for k, v in query.items() if v is not None}
    return client.get(ENDPOINT, params=query, headers=headers or {})


def test_serves_negotiated_webp(client):
    response = get_variant(client, headers=WEBP_ACCEPT)

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/webp"
    assert response.headers["cache-control"] == "public, max-age=60, immutable"
    assert response.headers["content-disposition"] == 'inline; filename="photo.webp"'
    assert len(response.headers["etag"]) == 16

    image = Image.open(io.BytesIO(response.content))
    assert image.format == "WEBP"
    assert image.width == 640


def test_keeps_source_codec_without_accepted_format(client):
    response = get_variant(client, headers={"Accept": "*/*"})

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/jpeg"
    assert response.headers["content-disposition"] == 'inline; filename="photo.jpg"'


def test_format_override(client):
    response = get_variant(client, headers={"Accept": "*/*"}, f="webp")
    assert response.headers["content-type"] == "image/webp"


def test_repeat_request_hits_cache_with_same_etag(client):
    first = get_variant(client, headers=WEBP_ACCEPT)
    second = get_variant(client, headers=WEBP_ACCEPT)

    assert second.status_code == 200
    assert second.headers["etag"] == first.headers["etag"]
    assert second.content == first.content


def test_matching_if_none_match_returns_304(client):
    etag = get_variant(client, headers=WEBP_ACCEPT).headers["etag"]

    response = get_variant(client, headers={**WEBP_ACCEPT, "If-None-Match": etag})

    assert response.status_code == 304
    assert response.content == b""
    assert response.headers["etag"] == etag


def test_stale_if_none_match_returns_body(client):
    response = get_variant(client, headers={**WEBP_ACCEPT, "If-None-Match": "0000000000000000"})
    assert response.status_code == 200
    assert len(response.content) > 0


def test_missing_url_returns_400(client):
    response = get_variant(client, url=None)
    assert response.status_code == 400
    assert response.json() == {"error": '"url" query parameter is required'}


def test_url_outside_uploads_returns_400(client):
    response = get_variant(client, url="/private/photo.jpg")
    assert response.status_code == 400
    assert response.json() == {"error": '"url" must start with /uploads/'}


def test_unconfigured_width_returns_400(client):
    response = get_variant(client, w="100")
    assert response.status_code == 400
    assert response.json() == {"error": '"w" must be one of: 64, 128, 640, 1080'}


def test_missing_width_returns_400(client):
    response = get_variant(client, w=None)
    assert response.status_code == 400


def test_quality_out_of_range_returns_400(client):
    response = get_variant(client, q="0")
    assert response.status_code == 400
    assert response.json() == {"error": '"q" must be between 1 and 100'}


def test_missing_asset_returns_404(client):
    response = get_variant(client, url="/uploads/missing.jpg")
    assert response.status_code == 404
    assert response.json() == {"error": "Image not found: /uploads/missing.jpg"}


def test_processing_error_returns_generic_500(client, optimizer):
    with patch.object(optimizer, "optimize", side_effect=ProcessingError("libavif exploded")):
        response = get_variant(client)

    assert response.status_code == 500
    assert response.json() == {"error": GENERIC_PROCESSING_MESSAGE}


def test_unexpected_error_returns_500(client, optimizer):
    with patch.object(optimizer, "optimize", side_effect=RuntimeError("boom")):
        response = get_variant(client)

    assert response.status_code == 500
    assert "boom" not in response.text


def test_svg_served_as_is(client):
    response = get_variant(client, headers=WEBP_ACCEPT, url="/uploads/logo.svg", w="64")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/svg+xml"
    assert response.content == SVG_BYTES


def test_animated_png_served_as_is(client, public_dir):
    response = get_variant(client, headers=WEBP_ACCEPT, url="/uploads/anim.png", w="64")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content == (public_dir / "uploads" / "anim.png").read_bytes()


def test_config_endpoint_withholds_cache_ttl(client):
    response = client.get(f"{ENDPOINT}/config")

    assert response.status_code == 200
    assert response.json() == {
        "deviceSizes": [640, 1080],
        "imageSizes": [64, 128],
        "qualities": [75],
        "formats": ["image/webp"],
        "dangerouslyAllowSVG": False,
    }


def test_svg_rasterized_when_allowed(client):
    svg_config = ImageConfig(
        device_sizes=[640, 1080],
        image_sizes=[64, 128],
        minimum_cache_ttl=60,
        dangerously_allow_svg=True,
    )
    app.dependency_overrides[get_image_config] = lambda: svg_config

    response = get_variant(client, headers=WEBP_ACCEPT, url="/uploads/logo.svg", w="64")

    assert response.status_code == 200
    assert response.headers["content-type"] == "image/webp"
    assert response.headers["content-disposition"] == 'inline; filename="logo.webp"'
    assert Image.open(io.BytesIO(response.content)).width == 64


def test_non_ascii_asset_name(client, public_dir):
    (public_dir / "uploads" / "照片.jpg").write_bytes(make_image_bytes("JPEG"))

    response = get_variant(client, headers=WEBP_ACCEPT, url="/uploads/照片.jpg")

    assert response.status_code == 200
    assert response.headers["content-disposition"] == (
        "inline; filename=\"__.webp\"; filename*=UTF-8''%E7%85%A7%E7%89%87.webp"
    )


def test_content_disposition_escapes_quotes_and_controls():
    assert content_disposition("photo.webp") == 'inline; filename="photo.webp"'
    assert content_disposition('a"b\\c\n.png') == (
        "inline; filename=\"a_b_c_.png\"; filename*=UTF-8''a%22b%5Cc%0A.png"
    )
