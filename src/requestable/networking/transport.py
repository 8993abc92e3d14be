"""Transport primitives used by :class:`~requestable.networking.client.HttpClient`.

A transport issues already-prepared requests and reports status, headers
and either a buffered body, a saved file, or a chunk iterator. It knows
nothing about modifiers, interceptors or transformers.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, Protocol

import requests

from .config import HttpClientConfig
from .errors import (
    ConnectionFailedError,
    HttpClientError,
    RequestTimeoutError,
    TransportError,
)
from .fields import HeaderFields
from .request import WireRequest
from .response import HttpResponse
from .trust import TrustEvaluatingAdapter, TrustEvaluator

logger = logging.getLogger(__name__)

Timeout = float | tuple[float, float] | None


@dataclass
class TransportResponse:
    """What a transport hands back before the pipeline attaches a request."""

    status_code: int
    header_fields: HeaderFields = field(default_factory=HeaderFields)
    data: bytes | None = None
    file_path: Path | None = None
    url: str | None = None
    reason: str | None = None
    elapsed_seconds: float | None = None

    def to_response(self, request: WireRequest) -> HttpResponse:
        return HttpResponse(
            request=request,
            status_code=self.status_code,
            header_fields=self.header_fields,
            data=self.data,
            file_path=self.file_path,
            url=self.url,
            reason=self.reason,
            elapsed_seconds=self.elapsed_seconds,
        )


@dataclass
class TransportStream:
    response: TransportResponse
    chunks: Iterator[bytes]
    close: Callable[[], None]


class Transport(Protocol):
    def send(
        self, request: requests.PreparedRequest, *, timeout: Timeout = None
    ) -> TransportResponse: ...

    def upload(
        self,
        request: requests.PreparedRequest,
        *,
        body: bytes | None = None,
        file_path: Path | None = None,
        timeout: Timeout = None,
    ) -> TransportResponse: ...

    def download(
        self,
        request: requests.PreparedRequest,
        destination: Path,
        *,
        timeout: Timeout = None,
    ) -> TransportResponse: ...

    def open_byte_stream(
        self, request: requests.PreparedRequest, *, timeout: Timeout = None
    ) -> TransportStream: ...


def _header_fields(response: requests.Response) -> HeaderFields:
    return HeaderFields.from_dict(dict(response.headers))


def _transport_response(
    response: requests.Response,
    data: bytes | None = None,
    file_path: Path | None = None,
) -> TransportResponse:
    try:
        elapsed = response.elapsed.total_seconds()
    except AttributeError:
        elapsed = None  # elapsed is missing on mocked responses
    return TransportResponse(
        status_code=response.status_code,
        header_fields=_header_fields(response),
        data=data,
        file_path=file_path,
        url=response.url,
        reason=response.reason,
        elapsed_seconds=elapsed,
    )


def map_request_exception(
    error: requests.exceptions.RequestException,
) -> HttpClientError:
    """Map requests exceptions to Requestable errors."""
    if isinstance(error, requests.exceptions.Timeout):
        return RequestTimeoutError(str(error))
    if isinstance(error, requests.exceptions.ConnectionError):
        return ConnectionFailedError(str(error))
    return TransportError(str(error))


class RequestsTransport:
    """Transport backed by one shared :class:`requests.Session`.

    Session-level headers from the config are only filled in when a
    request does not carry a header of the same name.
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        *,
        session: requests.Session | None = None,
        trust_evaluator: TrustEvaluator | None = None,
    ) -> None:
        self._config = config or HttpClientConfig()
        self._session = session or requests.Session()
        if self._config.user_agent:
            self._session.headers["User-Agent"] = self._config.user_agent
        self._session.headers.update(self._config.default_headers)
        if trust_evaluator is not None:
            self._session.mount(
                "https://", TrustEvaluatingAdapter(trust_evaluator)
            )

    @property
    def session(self) -> requests.Session:
        return self._session

    def close(self) -> None:
        self._session.close()

    def _fill_session_headers(self, request: requests.PreparedRequest) -> None:
        for name, value in self._session.headers.items():
            if value is not None and name not in request.headers:
                request.headers[name] = value

    def _send(
        self,
        request: requests.PreparedRequest,
        *,
        timeout: Timeout,
        stream: bool = False,
    ) -> requests.Response:
        self._fill_session_headers(request)
        logger.debug("Sending %s %s", request.method, request.url)
        try:
            return self._session.send(
                request,
                timeout=timeout,
                allow_redirects=True,
                stream=stream,
                verify=self._config.verify_tls,
            )
        except requests.exceptions.RequestException as exc:
            raise map_request_exception(exc) from exc

    def _read_all(self, response: requests.Response) -> bytes:
        try:
            return response.content
        except requests.exceptions.RequestException as exc:
            raise map_request_exception(exc) from exc

    def send(
        self, request: requests.PreparedRequest, *, timeout: Timeout = None
    ) -> TransportResponse:
        response = self._send(request, timeout=timeout)
        return _transport_response(response, data=self._read_all(response))

    def upload(
        self,
        request: requests.PreparedRequest,
        *,
        body: bytes | None = None,
        file_path: Path | None = None,
        timeout: Timeout = None,
    ) -> TransportResponse:
        if (body is None) == (file_path is None):
            raise ValueError("exactly one of body or file_path is required")
        if body is not None:
            request.prepare_body(body, None)
            return self.send(request, timeout=timeout)
        try:
            handle = open(file_path, "rb")  # type: ignore[arg-type]
        except OSError as exc:
            raise TransportError(f"cannot open {file_path}: {exc}") from exc
        with handle:
            request.prepare_body(handle, None)
            info = os.fstat(handle.fileno())
            if stat.S_ISREG(info.st_mode) and info.st_size == 0:
                # requests treats a zero-length stream as chunked
                request.headers.pop("Transfer-Encoding", None)
                request.headers["Content-Length"] = "0"
            response = self._send(request, timeout=timeout)
            return _transport_response(response, data=self._read_all(response))

    def download(
        self,
        request: requests.PreparedRequest,
        destination: Path,
        *,
        timeout: Timeout = None,
    ) -> TransportResponse:
        response = self._send(request, timeout=timeout, stream=True)
        try:
            handle = open(destination, "wb")
        except OSError as exc:
            response.close()
            raise TransportError(f"cannot open {destination}: {exc}") from exc
        try:
            with handle:
                for chunk in response.iter_content(
                    chunk_size=self._config.stream_buffer_size
                ):
                    handle.write(chunk)
        except requests.exceptions.RequestException as exc:
            _discard_partial(destination)
            raise map_request_exception(exc) from exc
        except OSError as exc:
            _discard_partial(destination)
            raise TransportError(f"cannot write {destination}: {exc}") from exc
        finally:
            response.close()
        return _transport_response(response, file_path=Path(destination))

    def open_byte_stream(
        self, request: requests.PreparedRequest, *, timeout: Timeout = None
    ) -> TransportStream:
        response = self._send(request, timeout=timeout, stream=True)
        chunks = response.iter_content(chunk_size=self._config.stream_buffer_size)
        return TransportStream(
            response=_transport_response(response),
            chunks=_mapped_chunks(chunks),
            close=response.close,
        )


def _discard_partial(destination: Path) -> None:
    try:
        Path(destination).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Unable to remove partial download %s: %s", destination, exc)


def _mapped_chunks(chunks: Iterable[bytes]) -> Iterator[bytes]:
    try:
        yield from chunks
    except requests.exceptions.RequestException as exc:
        raise map_request_exception(exc) from exc
