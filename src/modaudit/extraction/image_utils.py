"""Image and file resolution for content extraction.

Downloads use ``requests`` and local reads go through a
:class:`~modaudit.interfaces.StorageReader`. Both are blocking, so the async
wrappers run them with :func:`asyncio.to_thread` under an explicit timeout.
Every helper returns None (or a bracketed placeholder for text) instead of
raising.
"""

import asyncio
import base64
from io import BytesIO
from pathlib import PurePosixPath

import requests
from PIL import Image, UnidentifiedImageError
from pillow_heif import register_heif_opener

from modaudit.interfaces import StorageReader
from modaudit.util.logger import get_logger

logger = get_logger("image_utils")

register_heif_opener()

MAX_IMAGE_SIZE = 5 * 1024 * 1024
DOWNLOAD_TIMEOUT = 10
CONNECT_TIMEOUT = 5
USER_AGENT = "modaudit-content-audit/1.0"

TEXT_TRUNCATION_MARKER = "\n[... content truncated ...]"

_EXTENSION_MIME = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".heif": "image/heif",
}

# Formats chat-completion endpoints accept as image input
SUPPORTED_IMAGE_MIME = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})

JPEG_QUALITY = 90


def to_data_uri(data: bytes, mime_type: str) -> str:
    """Encode bytes as ``data:<mime>;base64,<payload>``."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def convert_to_jpeg(data: bytes) -> bytes | None:
    """Re-encode any image Pillow can open (HEIC included) as RGB JPEG."""
    try:
        with Image.open(BytesIO(data)) as img:
            buffer = BytesIO()
            img.convert("RGB").save(buffer, format="JPEG", quality=JPEG_QUALITY)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.warning("[IMAGE] Could not convert image to JPEG: %s", exc)
        return None
    return buffer.getvalue()


def image_to_data_uri(data: bytes, mime_type: str) -> str | None:
    """
    Encode image bytes as a data URI the LLM endpoint accepts.

    Supported formats are embedded as-is. Anything else is converted to
    JPEG first; None when the bytes cannot be decoded.
    """
    mime_type = mime_type.lower()
    if mime_type == "image/jpg":
        mime_type = "image/jpeg"
    if mime_type in SUPPORTED_IMAGE_MIME:
        return to_data_uri(data, mime_type)

    converted = convert_to_jpeg(data)
    if converted is None:
        return None
    logger.debug("[IMAGE] Converted %s image to JPEG (%d -> %d bytes)", mime_type, len(data), len(converted))
    return to_data_uri(converted, "image/jpeg")


def sniff_image_mime(data: bytes) -> str | None:
    """Identify image bytes with Pillow; None when they are not a readable image."""
    try:
        with Image.open(BytesIO(data)) as img:
            fmt = img.format
    except (UnidentifiedImageError, OSError, ValueError):
        return None
    if not fmt:
        return None
    return Image.MIME.get(fmt.upper())


def guess_image_mime(path: str, data: bytes, declared: str | None) -> str:
    """Pick the MIME type for a local image.

    Declared ``image/*`` types win, then Pillow sniffing, then the file
    extension, then ``image/jpeg``.
    """
    if declared and declared.startswith("image/"):
        return declared
    sniffed = sniff_image_mime(data)
    if sniffed:
        return sniffed
    return _EXTENSION_MIME.get(PurePosixPath(path).suffix.lower(), "image/jpeg")


# ---------------------------------------------------------------------------
# Remote fetches
# ---------------------------------------------------------------------------


CHUNK_SIZE = 64 * 1024


def _get(url: str, stream: bool = False) -> requests.Response:
    response = requests.get(
        url,
        timeout=(CONNECT_TIMEOUT, DOWNLOAD_TIMEOUT),
        headers={"User-Agent": USER_AGENT},
        stream=stream,
    )
    response.raise_for_status()
    return response


def _read_capped(response: requests.Response, max_size: int) -> bytes | None:
    """Read a streamed body, giving up as soon as it grows past ``max_size``."""
    buffer = bytearray()
    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
        buffer.extend(chunk)
        if len(buffer) > max_size:
            return None
    return bytes(buffer)


def download_image_as_data_uri(url: str, max_size: int = MAX_IMAGE_SIZE) -> str | None:
    """
    Download an image and return it as a base64 data URI.

    The body is streamed and abandoned once it exceeds ``max_size``; a
    declared ``Content-Length`` over the cap is rejected before reading.
    Responses that are not ``image/*`` are rejected, and formats the LLM
    endpoint does not accept are converted to JPEG. This function blocks the
    calling thread so it should be called through :func:`download_image`.

    Returns:
        str | None: The data URI, or None if the download failed or was rejected.
    """
    try:
        logger.debug("[DOWNLOAD] Downloading image from %s", url)
        response = _get(url, stream=True)
    except requests.RequestException as exc:
        logger.warning("[DOWNLOAD] Request failed for %s: %s", url, exc)
        return None

    with response:
        try:
            declared_size = int(response.headers.get("Content-Length") or 0)
        except ValueError:
            declared_size = 0
        if declared_size > max_size:
            logger.warning("[DOWNLOAD] Image too large (%d bytes): %s", declared_size, url)
            return None

        content_type = (response.headers.get("Content-Type") or "image/jpeg").split(";")[0].strip()
        if not content_type.startswith("image/"):
            logger.warning("[DOWNLOAD] URL is not an image (%s): %s", content_type, url)
            return None

        try:
            data = _read_capped(response, max_size)
        except requests.RequestException as exc:
            logger.warning("[DOWNLOAD] Body read failed for %s: %s", url, exc)
            return None

    if data is None:
        logger.warning("[DOWNLOAD] Image body exceeded %d bytes: %s", max_size, url)
        return None
    return image_to_data_uri(data, content_type)


async def download_image(url: str, max_size: int = MAX_IMAGE_SIZE) -> str | None:
    return await asyncio.to_thread(download_image_as_data_uri, url, max_size)


def cap_text(text: str, max_size: int) -> str:
    """Cap text at ``max_size`` bytes of UTF-8 and append the truncation marker."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_size:
        return text
    return encoded[:max_size].decode("utf-8", errors="ignore") + TEXT_TRUNCATION_MARKER


def download_text(url: str, max_size: int) -> str:
    """Fetch a remote text file; raises :class:`requests.RequestException` on failure."""
    response = _get(url)
    response.encoding = response.encoding or "utf-8"
    return cap_text(response.text, max_size)


# ---------------------------------------------------------------------------
# Local reads
# ---------------------------------------------------------------------------


def read_local_image_as_data_uri(
    storage: StorageReader, disk: str, path: str, max_size: int = MAX_IMAGE_SIZE
) -> str | None:
    """Read an image from a storage disk and return it as a data URI, or None."""
    try:
        if not storage.exists(disk, path):
            logger.warning("[LOCAL READ] Image file not found: %s:%s", disk, path)
            return None

        size = storage.size(disk, path)
        if size > max_size:
            logger.warning("[LOCAL READ] Image too large (%d bytes): %s:%s", size, disk, path)
            return None

        data = storage.read(disk, path)
        mime_type = guess_image_mime(path, data, storage.mime_type(disk, path))
    except Exception as exc:
        logger.error("[LOCAL READ] Failed to read image %s:%s: %s", disk, path, exc)
        return None

    logger.debug("[LOCAL READ] Read %s:%s (%d bytes, %s)", disk, path, size, mime_type)
    return image_to_data_uri(data, mime_type)


async def read_local_image(
    storage: StorageReader,
    disk: str,
    path: str,
    timeout: float,
    max_size: int = MAX_IMAGE_SIZE,
) -> str | None:
    try:
        return await asyncio.wait_for(
            asyncio.to_thread(read_local_image_as_data_uri, storage, disk, path, max_size),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logger.warning("[LOCAL READ] Timed out after %.1fs reading %s:%s", timeout, disk, path)
        return None


def read_local_text(storage: StorageReader, disk: str, path: str, max_size: int) -> str | None:
    """Read a text file from a storage disk; None when it does not exist."""
    if not storage.exists(disk, path):
        return None
    raw = storage.read(disk, path)
    return cap_text(raw.decode("utf-8", errors="replace"), max_size)
