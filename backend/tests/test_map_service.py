"""Tests for the satellite map loader (HTTP mocked)."""

import io
from unittest.mock import MagicMock, patch

import requests
from PIL import Image

from config import settings
from services.map_service import MapService


URL = "https://example.test/map.jpg"


def _png_bytes(size=(1024, 768), color=(10, 200, 10)):
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def _ok(content):
    resp = MagicMock()
    resp.content = content
    resp.raise_for_status.return_value = None
    return resp


class TestMapService:
    def test_resolve_always_uses_sample_image(self):
        assert MapService().resolve("350 5th Avenue, Manhattan") == settings.SAMPLE_MAP_IMAGE_URL
        assert MapService().resolve("anything") == settings.SAMPLE_MAP_IMAGE_URL

    def test_load_fits_image_to_canvas(self):
        with patch("services.map_service.requests.get", return_value=_ok(_png_bytes((400, 300)))) as mock_get:
            image = MapService(timeout=5).load(URL)
        mock_get.assert_called_once_with(URL, timeout=5)
        assert image.size == (settings.CANVAS_WIDTH, settings.CANVAS_HEIGHT)

    def test_load_keeps_canvas_sized_image(self):
        with patch("services.map_service.requests.get", return_value=_ok(_png_bytes())):
            image = MapService().load(URL)
        assert image.getpixel((10, 10)) == (10, 200, 10)

    def test_load_is_cached_per_url(self):
        service = MapService()
        with patch("services.map_service.requests.get", return_value=_ok(_png_bytes())) as mock_get:
            first = service.load(URL)
            second = service.load(URL)
        assert mock_get.call_count == 1
        assert first is not second
        assert first.tobytes() == second.tobytes()

    def test_network_error_returns_placeholder(self):
        with patch("services.map_service.requests.get", side_effect=requests.ConnectionError("offline")):
            image = MapService().load(URL)
        assert image.size == (settings.CANVAS_WIDTH, settings.CANVAS_HEIGHT)
        assert image.getpixel((0, 0)) == settings.PLACEHOLDER_COLOR

    def test_http_error_returns_placeholder(self):
        resp = _ok(b"")
        resp.raise_for_status.side_effect = requests.HTTPError("404")
        with patch("services.map_service.requests.get", return_value=resp):
            image = MapService().load(URL)
        assert image.getpixel((0, 0)) == settings.PLACEHOLDER_COLOR

    def test_undecodable_image_returns_placeholder(self):
        with patch("services.map_service.requests.get", return_value=_ok(b"<html>not an image</html>")):
            image = MapService().load(URL)
        assert image.getpixel((0, 0)) == settings.PLACEHOLDER_COLOR

    def test_failures_are_not_cached(self):
        service = MapService()
        with patch("services.map_service.requests.get", side_effect=requests.Timeout("slow")):
            service.load(URL)
        with patch("services.map_service.requests.get", return_value=_ok(_png_bytes())):
            image = service.load(URL)
        assert image.getpixel((10, 10)) == (10, 200, 10)
