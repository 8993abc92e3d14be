"""Error hierarchy for the Requestable networking layer.

Every exception raised by the library derives from :class:`HttpClientError`
so callers can catch one base class, while each failure kind keeps its own
type so client-side malformation can be told apart from transport failures.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, AbstractSet

if TYPE_CHECKING:
    from .response import HttpResponse


class HttpClientError(Exception):
    """Base class for all networking errors."""


class InvalidURLError(HttpClientError):
    """Environment, path and query items did not form a valid absolute URL."""


class RequestConstructionError(HttpClientError):
    """A wire request could not be built from an otherwise valid URL."""


class TransportError(HttpClientError):
    """The underlying transport failed to complete the exchange."""


class RequestTimeoutError(TransportError):
    """The transport gave up waiting for the server."""


class ConnectionFailedError(TransportError):
    """The transport could not reach the server."""


class RequestCancelledError(HttpClientError):
    """The call was cancelled before the response reached the interceptors."""


class HTTPStatusError(HttpClientError):
    """Response status code outside of the acceptable range."""

    def __init__(
        self, status_code: int, response: HttpResponse | None = None
    ) -> None:
        super().__init__(f"unacceptable HTTP status code {status_code}")
        self.status_code = status_code
        self.response = response


class ContentTypeMissingError(HttpClientError):
    """Response carried no Content-Type header."""

    def __init__(self, response: HttpResponse | None = None) -> None:
        super().__init__("response has no Content-Type header")
        self.response = response


class ContentTypeNotAcceptableError(HttpClientError):
    """Response Content-Type is not part of the allow-list."""

    def __init__(
        self,
        content_type: str,
        acceptable: AbstractSet[str],
        response: HttpResponse | None = None,
    ) -> None:
        super().__init__(
            f"content type {content_type!r} not in {sorted(acceptable)!r}"
        )
        self.content_type = content_type
        self.acceptable = frozenset(acceptable)
        self.response = response


class DecodeError(HttpClientError):
    """The response transformer could not decode the payload."""


class TrustEvaluationError(HttpClientError):
    """Server trust evaluation rejected the peer."""


class CertificateNotFoundError(TrustEvaluationError):
    """The server presented no certificate."""


class CertificatesDoNotMatchError(TrustEvaluationError):
    """None of the server certificates match a pinned public key."""


class NoHandlerRegisteredError(HttpClientError):
    """Mock transport has no handler for the request's test identifier."""


class MultipartFormError(HttpClientError):
    """Base class for multipart form source and encoding failures."""


class _PathError(MultipartFormError):
    message = "multipart source error"

    def __init__(self, path: str | Path) -> None:
        super().__init__(f"{self.message}: {path}")
        self.path = path


class BadURLError(_PathError):
    message = "not a file URL"


class InvalidFilenameError(_PathError):
    message = "invalid file name"


class SourceNotFoundError(_PathError):
    message = "file not found"


class FileAlreadyExistsError(_PathError):
    message = "file already exists"


class AccessDeniedError(_PathError):
    message = "access denied"


class FileIsDirectoryError(_PathError):
    message = "file is a directory"


class FileSizeUnavailableError(_PathError):
    message = "file size not available"


class StreamCreationError(_PathError):
    message = "unable to open stream"


class StreamReadError(MultipartFormError):
    """Reading a body part's content failed."""


class StreamWriteError(MultipartFormError):
    """Writing the encoded form to its destination failed."""


class LengthMismatchError(MultipartFormError):
    """A body part yielded a different number of bytes than declared."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"expected length {expected}, encoded length {actual}"
        )
        self.expected = expected
        self.actual = actual
