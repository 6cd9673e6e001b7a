"""Tests for image_utils module."""

import asyncio
import base64
import io
import time
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests
from PIL import Image

from conftest import FakeStorage
from modaudit.extraction.image_utils import (
    MAX_IMAGE_SIZE,
    TEXT_TRUNCATION_MARKER,
    cap_text,
    download_image_as_data_uri,
    guess_image_mime,
    image_to_data_uri,
    read_local_image,
    read_local_image_as_data_uri,
    read_local_text,
    sniff_image_mime,
    to_data_uri,
)


def image_bytes(fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (4, 4), color="red").save(buffer, format=fmt)
    return buffer.getvalue()


def png_bytes() -> bytes:
    return image_bytes("PNG")


def heif_bytes() -> bytes:
    try:
        return image_bytes("HEIF")
    except (KeyError, OSError, ValueError):
        pytest.skip("HEIF encoder not available")


def decoded_format(uri: str) -> str:
    header, payload = uri.split(",", 1)
    with Image.open(io.BytesIO(base64.b64decode(payload))) as img:
        return img.format


def streamed_response(headers, chunks):
    response = MagicMock()
    response.headers = headers
    response.iter_content.return_value = iter(chunks)
    response.__enter__.return_value = response
    return response


class TestMimeDetection:
    def test_data_uri(self):
        assert to_data_uri(b"abc", "image/png") == "data:image/png;base64," + base64.b64encode(b"abc").decode()

    def test_sniff_png(self):
        assert sniff_image_mime(png_bytes()) == "image/png"
        assert sniff_image_mime(b"not an image") is None

    def test_declared_type_wins(self):
        assert guess_image_mime("a.bin", b"junk", "image/webp") == "image/webp"

    def test_falls_back_to_extension_then_jpeg(self):
        assert guess_image_mime("a.gif", b"junk", "application/octet-stream") == "image/gif"
        assert guess_image_mime("a.bin", b"junk", None) == "image/jpeg"


class TestImageConversion:
    """Only formats the LLM endpoint accepts are embedded as-is."""

    def test_supported_formats_pass_through(self):
        assert image_to_data_uri(b"abc", "image/png") == to_data_uri(b"abc", "image/png")
        assert image_to_data_uri(b"abc", "image/jpg") == to_data_uri(b"abc", "image/jpeg")

    def test_bmp_is_converted_to_jpeg(self):
        uri = image_to_data_uri(image_bytes("BMP"), "image/bmp")

        assert uri.startswith("data:image/jpeg;base64,")
        assert decoded_format(uri) == "JPEG"

    def test_heif_is_converted_to_jpeg(self):
        uri = image_to_data_uri(heif_bytes(), "image/heif")

        assert uri.startswith("data:image/jpeg;base64,")
        assert decoded_format(uri) == "JPEG"

    def test_undecodable_unsupported_image(self):
        assert image_to_data_uri(b"junk", "image/heic") is None


class TestDownloadImage:
    @patch("modaudit.extraction.image_utils.requests.get")
    def test_successful_download(self, mock_get):
        mock_get.return_value = streamed_response(
            {"Content-Type": "image/png; charset=binary", "Content-Length": "3"}, [b"a", b"bc"]
        )

        result = download_image_as_data_uri("https://a.test/x.png")

        assert result == to_data_uri(b"abc", "image/png")
        _, kwargs = mock_get.call_args
        assert kwargs["timeout"] == (5, 10)
        assert kwargs["stream"] is True

    @patch("modaudit.extraction.image_utils.requests.get")
    def test_oversized_declared_length_rejected(self, mock_get):
        response = streamed_response({"Content-Type": "image/png", "Content-Length": str(MAX_IMAGE_SIZE + 1)}, [])
        mock_get.return_value = response

        assert download_image_as_data_uri("https://a.test/x.png") is None
        response.iter_content.assert_not_called()

    @patch("modaudit.extraction.image_utils.requests.get")
    def test_oversized_body_stops_reading(self, mock_get):
        consumed = []

        def chunks():
            for chunk in (b"x" * 6, b"x" * 6, b"x" * 6):
                consumed.append(chunk)
                yield chunk

        response = streamed_response({"Content-Type": "image/png"}, [])
        response.iter_content.return_value = chunks()
        mock_get.return_value = response

        assert download_image_as_data_uri("https://a.test/x.png", max_size=10) is None
        assert len(consumed) == 2

    @patch("modaudit.extraction.image_utils.requests.get")
    def test_downloaded_bmp_is_converted(self, mock_get):
        mock_get.return_value = streamed_response({"Content-Type": "image/bmp"}, [image_bytes("BMP")])

        result = download_image_as_data_uri("https://a.test/x.bmp")

        assert decoded_format(result) == "JPEG"

    @patch("modaudit.extraction.image_utils.requests.get")
    def test_non_image_rejected(self, mock_get):
        mock_get.return_value = streamed_response({"Content-Type": "text/html"}, [b"<html>"])

        assert download_image_as_data_uri("https://a.test/page") is None

    @patch("modaudit.extraction.image_utils.requests.get")
    def test_request_error_returns_none(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("refused")

        assert download_image_as_data_uri("https://a.test/x.png") is None


class TestLocalReads:
    def test_reads_and_sniffs_local_image(self):
        data = png_bytes()
        storage = FakeStorage({("avatars", "a.png"): data})

        assert read_local_image_as_data_uri(storage, "avatars", "a.png") == to_data_uri(data, "image/png")

    def test_local_heif_is_inlined_as_jpeg(self):
        storage = FakeStorage({("uploads", "files/a.heic"): heif_bytes()})

        uri = read_local_image_as_data_uri(storage, "uploads", "files/a.heic")

        assert uri.startswith("data:image/jpeg;base64,")

    def test_missing_file(self):
        assert read_local_image_as_data_uri(FakeStorage(), "avatars", "a.png") is None

    def test_oversized_file(self):
        storage = FakeStorage({("avatars", "a.png"): b"x" * 11})

        assert read_local_image_as_data_uri(storage, "avatars", "a.png", max_size=10) is None
        assert storage.reads == []

    def test_storage_error_returns_none(self):
        storage = FakeStorage({("avatars", "a.png"): b"x"})
        storage.read = Mock(side_effect=PermissionError("denied"))

        assert read_local_image_as_data_uri(storage, "avatars", "a.png") is None

    @pytest.mark.asyncio
    async def test_slow_read_times_out(self):
        storage = FakeStorage({("avatars", "a.png"): b"x"})

        def slow_exists(disk, path):
            time.sleep(0.3)
            return True

        storage.exists = slow_exists
        assert await read_local_image(storage, "avatars", "a.png", timeout=0.05) is None
        await asyncio.sleep(0.3)

    def test_text_is_capped(self):
        storage = FakeStorage({("uploads", "files/a.txt"): "héllo world".encode()})

        assert read_local_text(storage, "uploads", "files/a.txt", max_size=100) == "héllo world"
        assert read_local_text(storage, "uploads", "files/a.txt", max_size=3) == "hé" + TEXT_TRUNCATION_MARKER
        assert read_local_text(storage, "uploads", "files/a.txt", max_size=2) == "h" + TEXT_TRUNCATION_MARKER
        assert read_local_text(storage, "uploads", "missing.txt", max_size=3) is None

    def test_cap_text_respects_multibyte_boundaries(self):
        assert cap_text("ééé", 3) == "é" + TEXT_TRUNCATION_MARKER
