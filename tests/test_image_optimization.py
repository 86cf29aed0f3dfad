import base64
import io
from unittest.mock import MagicMock

import pytest
from PIL import Image

from tests.conftest import client_error, load_handler

SOURCE = "portfolio-media"
PROCESSED = "portfolio-processed-images-staging"


def jpeg_bytes(size=(400, 300)):
    out = io.BytesIO()
    Image.new("RGB", size, color=(200, 120, 40)).save(out, "JPEG")
    return out.getvalue()


@pytest.fixture
def images(monkeypatch, mock_s3_client):
    module = load_handler("image_optimization")
    monkeypatch.setattr(module, "s3", mock_s3_client)
    monkeypatch.setenv("SOURCE_BUCKET", SOURCE)
    monkeypatch.setenv("PROCESSED_BUCKET", PROCESSED)
    return module


def serve_from_source(mock_s3_client, data):
    def get_object(Bucket, Key):
        if Bucket == PROCESSED:
            raise client_error("NoSuchKey", "GetObject")
        return {"Body": MagicMock(read=lambda: data)}
    mock_s3_client.get_object = MagicMock(side_effect=get_object)


class TestParameters:

    def test_defaults(self, images):
        assert images.parse_params(None) == {
            "width": None,
            "height": None,
            "quality": 85,
            "format": "auto",
            "fit": "cover",
            "auto": False,
        }

    def test_invalid_values_fall_back(self, images):
        params = images.parse_params({"w": "wide", "q": "", "fit": "stretch", "f": "WEBP", "auto": "1"})
        assert params["width"] is None
        assert params["quality"] == 85
        assert params["fit"] == "cover"
        assert params["format"] == "webp"
        assert params["auto"] is True

    @pytest.mark.parametrize("accept, requested, auto, expected", [
        ("image/avif,image/webp", "png", True, "png"),
        ("image/avif,image/webp", "auto", True, "avif"),
        ("image/webp,*/*", "auto", True, "webp"),
        ("image/avif,image/webp", "auto", False, "jpeg"),
        ("", "auto", True, "jpeg"),
        ("image/webp", "tiff", True, "webp"),
    ])
    def test_determine_format(self, images, accept, requested, auto, expected):
        assert images.determine_format(accept, requested, auto, webp=True, avif=True) == expected

    def test_avif_disabled(self, images):
        assert images.determine_format("image/avif,image/webp", "auto", True, webp=True, avif=False) == "webp"

    def test_cache_key(self, images):
        params = images.parse_params({"w": "800", "fit": "inside"})
        assert images.cache_key("portfolio/a.jpg", params, "webp") == \
            "processed/portfolio/a.jpg/800_q85_inside.webp"

    def test_clamp(self, images):
        assert images.clamp({"width": 5000, "height": 100}) == (2048, 100)


@pytest.mark.parametrize("width, height, fit, expected", [
    (800, None, "cover", (800, 600)),
    (None, 300, "cover", (400, 300)),
    (8000, None, "cover", (4000, 3000)),
    (800, 800, "inside", (800, 600)),
    (800, 800, "outside", (1067, 800)),
    (800, 800, "cover", (800, 800)),
    (5000, 5000, "fill", (4000, 3000)),
    (None, None, "cover", (4000, 3000)),
])
def test_target_size(images, width, height, fit, expected):
    assert images.target_size((4000, 3000), width, height, fit) == expected


class TestHandler:

    def test_requires_path(self, images):
        assert images.handler({"rawPath": "/"}, None)["statusCode"] == 400

    def test_serves_cached_image(self, images, mock_s3_client):
        mock_s3_client.get_object = MagicMock(return_value={"Body": MagicMock(read=lambda: b"cached")})

        result = images.handler({"rawPath": "/portfolio/a.jpg", "queryStringParameters": {"w": "200"}}, None)

        assert result["statusCode"] == 200
        assert base64.b64decode(result["body"]) == b"cached"
        assert result["headers"]["Content-Type"] == "image/jpeg"
        assert "X-Image-Processed" not in result["headers"]
        mock_s3_client.put_object.assert_not_called()

    def test_resizes_and_caches(self, images, mock_s3_client):
        serve_from_source(mock_s3_client, jpeg_bytes())

        result = images.handler({
            "rawPath": "/portfolio/a.jpg",
            "queryStringParameters": {"w": "200", "f": "png"},
        }, None)

        assert result["statusCode"] == 200
        assert result["isBase64Encoded"] is True
        assert result["headers"]["X-Image-Processed"] == "true"
        assert result["headers"]["Cache-Control"] == "public, max-age=31536000, immutable"
        resized = Image.open(io.BytesIO(base64.b64decode(result["body"])))
        assert resized.format == "PNG"
        assert resized.size == (200, 150)
        put = mock_s3_client.put_object.call_args.kwargs
        assert put["Bucket"] == PROCESSED
        assert put["Key"] == "processed/portfolio/a.jpg/200_q85_cover.png"
        assert put["ContentType"] == "image/png"

    def test_cover_crops_to_exact_size(self, images, mock_s3_client):
        serve_from_source(mock_s3_client, jpeg_bytes())
        result = images.handler({
            "rawPath": "/a.jpg",
            "queryStringParameters": {"w": "100", "h": "100", "f": "jpeg"},
        }, None)
        assert Image.open(io.BytesIO(base64.b64decode(result["body"]))).size == (100, 100)

    def test_missing_source_is_404(self, images, mock_s3_client):
        mock_s3_client.get_object = MagicMock(side_effect=client_error("NoSuchKey", "GetObject"))
        assert images.handler({"rawPath": "/missing.jpg"}, None)["statusCode"] == 404

    def test_unreadable_image_is_500(self, images, mock_s3_client):
        serve_from_source(mock_s3_client, b"not an image")
        assert images.handler({"rawPath": "/broken.jpg"}, None)["statusCode"] == 500
