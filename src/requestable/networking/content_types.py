"""Common media types used in Accept / Content-Type headers."""

from __future__ import annotations


class ContentType:
    ANY = "*/*"
    CSS = "text/css"
    FORM_DATA = "form-data"
    FORM_ENCODED = "application/x-www-form-urlencoded"
    GIF = "image/gif"
    HTML = "text/html"
    JPEG = "image/jpeg"
    JSON = "application/json"
    JSON_UTF8 = "application/json; charset=utf-8"
    MULTIPART_FORM = "multipart/form-data"
    OCTET_STREAM = "application/octet-stream"
    PATCH_JSON = "application/json-patch+json"
    PNG = "image/png"
    SVG = "image/svg+xml"
    TEXT_PLAIN = "text/plain"
    XML = "application/xml"


def parse_content_types(value: str | None) -> frozenset[str] | None:
    """Split a Content-Type header value on commas.

    Returns ``None`` when the header is missing or holds only whitespace.
    """
    if value is None:
        return None
    types = frozenset(
        part.strip() for part in value.split(",") if part.strip()
    )
    return types or None
