"""Markup stripping, truncation and in-body image discovery."""

from __future__ import annotations

import html
import re
from urllib.parse import urlparse

from modaudit.util.logger import get_logger

logger = get_logger("text_utils")

MAX_CONTEXT_LENGTH = 5000
TRUNCATION_MARKER = "..."

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")

# TextFormatter XML stores images as <IMG src="..."> inside the post body
_XML_IMG_RE = re.compile(r"""<IMG\s+src=["']([^"']+)["']""", re.IGNORECASE)
_HTML_IMG_RE = re.compile(r"""<img\s+[^>]*src=["']([^"']+)["']""", re.IGNORECASE)
_MARKDOWN_IMG_RE = re.compile(r"!\[(?:[^\]]*)\]\(([^)]+)\)")
_BARE_IMG_URL_RE = re.compile(
    r"""https?://[^\s<>"']+\.(?:jpg|jpeg|png|gif|webp|bmp|svg)(?:\?[^\s<>"']*)?""",
    re.IGNORECASE,
)


def strip_html(markup: str | None) -> str:
    """Drop tags, decode entities and collapse whitespace."""
    if not markup:
        return ""
    text = _TAG_RE.sub("", markup)
    text = html.unescape(text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate(text: str | None, max_length: int = MAX_CONTEXT_LENGTH) -> str:
    """Cut ``text`` to ``max_length`` characters and append ``...`` when cut."""
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + TRUNCATION_MARKER


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def extract_image_urls(markup: str | None) -> list[str]:
    """Return unique image URLs found in XML, HTML or Markdown content.

    Order follows the pattern order (XML tags, HTML tags, Markdown, bare
    URLs) and then position in the text. Only absolute http(s) URLs survive.
    """
    if not markup:
        return []

    candidates: list[str] = []
    for pattern in (_XML_IMG_RE, _HTML_IMG_RE, _MARKDOWN_IMG_RE):
        candidates.extend(match.group(1).strip() for match in pattern.finditer(markup))
    candidates.extend(match.group(0) for match in _BARE_IMG_URL_RE.finditer(markup))

    urls: list[str] = []
    for candidate in candidates:
        if candidate in urls or not is_valid_url(candidate):
            continue
        urls.append(candidate)

    if urls:
        logger.debug("[TEXT UTILS] Extracted %d image url(s) from content", len(urls))
    return urls
