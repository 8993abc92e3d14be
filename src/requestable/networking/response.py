"""Buffered response values passed through the interceptor chain."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import AbstractSet, Callable, Iterator

from .content_types import parse_content_types
from .errors import (
    ContentTypeMissingError,
    ContentTypeNotAcceptableError,
    DecodeError,
    HTTPStatusError,
)
from .fields import HeaderFields, HeaderName
from .request import WireRequest

SUCCESSFUL_STATUS_CODES = range(200, 300)


@dataclass
class HttpResponse:
    """Status, headers and either a body or a saved file path.

    Interceptors may update fields in place.
    """

    request: WireRequest
    status_code: int
    header_fields: HeaderFields = field(default_factory=HeaderFields)
    data: bytes | None = None
    file_path: Path | None = None
    url: str | None = None
    reason: str | None = None
    elapsed_seconds: float | None = None

    @property
    def content_type(self) -> str | None:
        return self.header_fields.get(HeaderName.CONTENT_TYPE)

    @property
    def content_types(self) -> frozenset[str] | None:
        return parse_content_types(self.content_type)

    @property
    def is_successful(self) -> bool:
        return self.status_code in SUCCESSFUL_STATUS_CODES

    def validate_status(
        self, acceptable: range | AbstractSet[int] = SUCCESSFUL_STATUS_CODES
    ) -> HttpResponse:
        if self.status_code not in acceptable:
            raise HTTPStatusError(self.status_code, self)
        return self

    def validate_content_type(
        self, acceptable: AbstractSet[str] | None = None
    ) -> HttpResponse:
        """Check Content-Type against ``acceptable``; ``None`` skips the check."""
        if acceptable is None:
            return self
        content_type = self.content_type
        if content_type is None:
            raise ContentTypeMissingError(self)
        if content_type not in acceptable:
            raise ContentTypeNotAcceptableError(content_type, acceptable, self)
        return self

    def validate_not_empty(self) -> bytes:
        if self.data is None:
            raise DecodeError("response has no body")
        if not self.data:
            raise DecodeError("response body is empty")
        return self.data


@dataclass
class ByteStream:
    """Unbuffered response: metadata plus an iterator over body chunks.

    Use as a context manager so the underlying connection is released.
    """

    response: HttpResponse
    chunks: Iterator[bytes]
    on_close: Callable[[], None] | None = None

    def __iter__(self) -> Iterator[bytes]:
        return self.chunks

    def close(self) -> None:
        if self.on_close is not None:
            self.on_close()

    def __enter__(self) -> ByteStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
