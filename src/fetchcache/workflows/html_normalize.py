"""Turn an origin response into the HTML document the cache stores.

The cache only ever holds UTF-8 HTML. Non-HTML payloads are replaced by a
small placeholder page and empty HTML bodies by a page carrying the
origin's status message.
"""

from __future__ import annotations

import codecs
import html
import re
from typing import Optional

from charset_normalizer import from_bytes

from .web_fetch import FetchResponse

__all__ = [
    "NOT_HTML_MARKER",
    "decode_bytes_auto",
    "htmlize",
    "is_html_content_type",
    "normalize_response",
]

NOT_HTML_MARKER = "Not HTML!"

_CHARSET_RE = re.compile(r"charset=([^\s;]+)", re.I)


def htmlize(message: str) -> str:
    return f"<html><body>{message}</body></html>"


def is_html_content_type(header: Optional[str]) -> bool:
    """True when the media type (parameters ignored) is ``text/html``."""

    if not header:
        return False
    media_type = header.split(";", 1)[0].strip().lower()
    return media_type == "text/html"


def _header_charset(header: Optional[str]) -> Optional[str]:
    if not header:
        return None
    match = _CHARSET_RE.search(header)
    if not match:
        return None
    enc = match.group(1).strip(' "\'').lower()
    try:
        return codecs.lookup(enc).name
    except LookupError:
        return None


def decode_bytes_auto(body: bytes, content_type: Optional[str] = None) -> str:
    """Decode HTTP bytes using the header charset, else charset-normalizer."""

    enc = _header_charset(content_type)
    if enc:
        return body.decode(enc, errors="replace")
    result = from_bytes(body).best()
    if result is None:
        return body.decode("utf-8", errors="replace")
    return str(result)


def normalize_response(response: FetchResponse) -> bytes:
    if not is_html_content_type(response.content_type):
        return htmlize(NOT_HTML_MARKER).encode("utf-8")
    if not response.body:
        return htmlize(html.escape(response.status_message or "")).encode("utf-8")
    return decode_bytes_auto(response.body, response.content_type).encode("utf-8")
