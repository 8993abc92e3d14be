"""Synchronous HTTP client for the Requestable networking layer.

Every call runs the same pipeline: build the wire request, apply the
modifiers, send through the interceptor chain, then run the response
transformer. Only the transport primitive used at the send step differs
between the transfer shapes.
"""

from __future__ import annotations

import enum
import logging
import tempfile
import uuid
from pathlib import Path
from typing import Any, Callable, Sequence, TypeVar

import requests

from requestable.multipart.form import MultipartForm

from .cancellation import CancellationToken, raise_if_cancelled
from .config import HttpClientConfig
from .errors import HttpClientError
from .fields import HeaderField
from .interceptors import Interceptor, StatusCodeValidator, run_chain
from .modifiers import RequestModifier, apply_modifiers
from .request import HttpRequest, WireRequest
from .response import ByteStream, HttpResponse
from .transport import RequestsTransport, Timeout, Transport, TransportResponse
from .trust import TrustEvaluator

logger = logging.getLogger(__name__)

ResultType = TypeVar("ResultType")

TEMP_DIRECTORY_NAME = "requestable"
MULTIPART_DIRECTORY_NAME = "multipart.form.data"
DOWNLOAD_DIRECTORY_NAME = "downloads"

Primitive = Callable[[requests.PreparedRequest, Timeout], TransportResponse]


class TransferState(enum.Enum):
    BUILDING = "building"
    MODIFIED = "modified"
    SENT = "sent"
    INTERCEPTED = "intercepted"
    TRANSFORMED = "transformed"
    FAILED = "failed"


def _transition(request: WireRequest | HttpRequest[Any], state: TransferState) -> None:
    logger.debug("%s -> %s", request, state.value)


class HttpClient:
    """Core HTTP client (sync).

    The modifier and interceptor lists are fixed when the client is built
    and shared by every call, so one client may be used from several
    threads. Each call either returns its result or raises one
    :class:`HttpClientError`.
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        transport: Transport | None = None,
        *,
        modifiers: Sequence[RequestModifier] = (),
        interceptors: Sequence[Interceptor] | None = None,
        trust_evaluator: TrustEvaluator | None = None,
    ) -> None:
        """Create a new HttpClient.

        Args:
            config: Configuration for timeouts, headers and temp storage.
            transport: Transport to send through; defaults to a
                :class:`RequestsTransport` built from ``config``.
            modifiers: Applied in order to every outgoing request.
            interceptors: Wrapped around the send, first one outermost.
                Defaults to a status validator for
                ``config.acceptable_status_codes``.
            trust_evaluator: Installed on the default transport for HTTPS.
        """
        self._config = config or HttpClientConfig()
        if transport is None:
            transport = RequestsTransport(
                self._config, trust_evaluator=trust_evaluator
            )
        self._transport = transport
        self._modifiers = tuple(modifiers)
        if interceptors is None:
            interceptors = (StatusCodeValidator(self._config.acceptable_status_codes),)
        self._interceptors = tuple(interceptors)

    @property
    def config(self) -> HttpClientConfig:
        return self._config

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def modifiers(self) -> tuple[RequestModifier, ...]:
        return self._modifiers

    @property
    def interceptors(self) -> tuple[Interceptor, ...]:
        return self._interceptors

    def _modified(self, request: HttpRequest[Any]) -> WireRequest:
        _transition(request, TransferState.BUILDING)
        wire_request = apply_modifiers(request.wire_request, self._modifiers)
        _transition(wire_request, TransferState.MODIFIED)
        return wire_request

    def _execute(
        self,
        request: HttpRequest[Any],
        primitive: Primitive,
        *,
        body: bytes | None = None,
        timeout: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> HttpResponse:
        """Run one buffered transfer through modifiers and interceptors."""
        resolved_timeout = self._config.resolve_timeout(timeout)
        try:
            raise_if_cancelled(cancellation)
            wire_request = self._modified(request)

            def send(outgoing: WireRequest) -> HttpResponse:
                raise_if_cancelled(cancellation)
                prepared = outgoing.prepare(body)
                result = primitive(prepared, resolved_timeout)
                raise_if_cancelled(cancellation)
                _transition(outgoing, TransferState.SENT)
                return result.to_response(outgoing)

            response = run_chain(wire_request, self._interceptors, send)
            _transition(wire_request, TransferState.INTERCEPTED)
            return response
        except HttpClientError as exc:
            logger.debug("%s -> %s: %r", request, TransferState.FAILED.value, exc)
            raise

    def _transformed(
        self, request: HttpRequest[ResultType], response: HttpResponse
    ) -> ResultType:
        try:
            result = request.transform(response.data or b"")
        except HttpClientError as exc:
            logger.debug("%s -> %s: %r", request, TransferState.FAILED.value, exc)
            raise
        _transition(request, TransferState.TRANSFORMED)
        return result

    def send(
        self,
        request: HttpRequest[Any],
        *,
        timeout: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> HttpResponse:
        """Send ``request`` with its body and return the buffered response.

        Args:
            request: Request descriptor.
            timeout: Override timeout in seconds for this call.
            cancellation: Token checked before and after the send.

        Returns:
            The response after every interceptor has run.
        """
        return self._execute(
            request,
            lambda prepared, resolved: self._transport.send(
                prepared, timeout=resolved
            ),
            body=request.body,
            timeout=timeout,
            cancellation=cancellation,
        )

    def data(
        self,
        request: HttpRequest[Any],
        *,
        timeout: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> bytes:
        """Return the raw response body."""
        response = self.send(request, timeout=timeout, cancellation=cancellation)
        return response.data or b""

    def fetch(
        self,
        request: HttpRequest[ResultType],
        *,
        timeout: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ResultType:
        """Send ``request`` and decode the body with its transformer.

        Raises:
            DecodeError: The transformer rejected the body.
        """
        response = self.send(request, timeout=timeout, cancellation=cancellation)
        return self._transformed(request, response)

    def upload(
        self,
        request: HttpRequest[ResultType],
        body: bytes,
        *,
        timeout: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ResultType:
        """Upload ``body`` in place of the request's own body."""
        response = self._execute(
            request,
            lambda prepared, resolved: self._transport.upload(
                prepared, body=body, timeout=resolved
            ),
            timeout=timeout,
            cancellation=cancellation,
        )
        return self._transformed(request, response)

    def upload_file(
        self,
        request: HttpRequest[ResultType],
        file_path: str | Path,
        *,
        timeout: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ResultType:
        """Upload the content of ``file_path`` as the request body."""
        path = Path(file_path)
        response = self._execute(
            request,
            lambda prepared, resolved: self._transport.upload(
                prepared, file_path=path, timeout=resolved
            ),
            timeout=timeout,
            cancellation=cancellation,
        )
        return self._transformed(request, response)

    def upload_multipart(
        self,
        request: HttpRequest[ResultType],
        form: MultipartForm,
        *,
        timeout: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ResultType:
        """Upload an encoded multipart form.

        Forms up to ``config.memory_threshold`` bytes are encoded in memory.
        Larger ones are written to a temporary file that is removed once the
        upload returns or fails.
        """
        request = request.setting_header(HeaderField.content_type(form.content_type))
        if form.content_length <= self._config.memory_threshold:
            body = form.encoded(cancellation)
            return self.upload(
                request, body, timeout=timeout, cancellation=cancellation
            )

        path = self._temp_path(MULTIPART_DIRECTORY_NAME)
        try:
            form.write_encoded(path, cancellation)
            return self.upload_file(
                request, path, timeout=timeout, cancellation=cancellation
            )
        finally:
            self._remove_temp_file(path)

    def download(
        self,
        request: HttpRequest[Any],
        destination: str | Path | None = None,
        *,
        timeout: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> HttpResponse:
        """Save the response body to ``destination``.

        Without ``destination`` a new file under the temp directory is used;
        it is removed again when the call fails.
        The returned response carries the path in ``file_path``.
        """
        owned = destination is None
        path = self._temp_path(DOWNLOAD_DIRECTORY_NAME) if owned else Path(destination)
        try:
            return self._execute(
                request,
                lambda prepared, resolved: self._transport.download(
                    prepared, path, timeout=resolved
                ),
                timeout=timeout,
                cancellation=cancellation,
            )
        except BaseException:
            if owned:
                self._remove_temp_file(path)
            raise

    def byte_stream(
        self,
        request: HttpRequest[Any],
        *,
        timeout: float | None = None,
        cancellation: CancellationToken | None = None,
    ) -> ByteStream:
        """Open an unbuffered response.

        Modifiers run but interceptors do not, since the body is never
        fully buffered.
        """
        resolved_timeout = self._config.resolve_timeout(timeout)
        raise_if_cancelled(cancellation)
        wire_request = self._modified(request)
        stream = self._transport.open_byte_stream(
            wire_request.prepare(request.body), timeout=resolved_timeout
        )
        _transition(wire_request, TransferState.SENT)
        if cancellation is not None and cancellation.is_cancelled():
            stream.close()
            raise_if_cancelled(cancellation)
        return ByteStream(
            response=stream.response.to_response(wire_request),
            chunks=stream.chunks,
            on_close=stream.close,
        )

    def _temp_path(self, name: str) -> Path:
        base = self._config.temp_directory or Path(tempfile.gettempdir())
        directory = base / TEMP_DIRECTORY_NAME / name
        directory.mkdir(parents=True, exist_ok=True)
        return directory / uuid.uuid4().hex.upper()

    @staticmethod
    def _remove_temp_file(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Unable to remove temporary file %s: %s", path, exc)
