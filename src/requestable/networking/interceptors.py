"""Interceptors wrapping the transport send.

The chain is composed so the first registered interceptor is the
outermost wrapper: for ``[A, B]`` the call runs as ``A(B(send))`` and B
sees the response before A does. Raising from any interceptor aborts the
rest of the chain.
"""

from __future__ import annotations

import functools
import logging
from typing import AbstractSet, Callable, Iterable, Protocol, Sequence, runtime_checkable

from .request import WireRequest
from .response import SUCCESSFUL_STATUS_CODES, HttpResponse

Next = Callable[[WireRequest], HttpResponse]


@runtime_checkable
class Interceptor(Protocol):
    def intercept(self, request: WireRequest, proceed: Next) -> HttpResponse:
        """Call ``proceed`` to continue the chain, or raise to abort it."""
        ...


def build_chain(interceptors: Sequence[Interceptor], send: Next) -> Next:
    """Wrap ``send`` with ``interceptors``, last registered innermost."""
    handler = send
    for interceptor in reversed(interceptors):
        handler = functools.partial(_invoke, interceptor, handler)
    return handler


def _invoke(
    interceptor: Interceptor, proceed: Next, request: WireRequest
) -> HttpResponse:
    return interceptor.intercept(request, proceed)


def run_chain(
    request: WireRequest, interceptors: Sequence[Interceptor], send: Next
) -> HttpResponse:
    return build_chain(interceptors, send)(request)


class ResponseInterceptor:
    """Base class for interceptors that only look at the response."""

    def intercept(self, request: WireRequest, proceed: Next) -> HttpResponse:
        response = proceed(request)
        self.intercept_response(response)
        return response

    def intercept_response(self, response: HttpResponse) -> None:
        pass


class StatusCodeValidator(ResponseInterceptor):
    """Raise :class:`HTTPStatusError` for codes outside ``acceptable``."""

    def __init__(
        self, acceptable: range | AbstractSet[int] = SUCCESSFUL_STATUS_CODES
    ) -> None:
        self.acceptable = acceptable

    def intercept_response(self, response: HttpResponse) -> None:
        response.validate_status(self.acceptable)


class ContentTypeValidator(ResponseInterceptor):
    """Check the response Content-Type against an allow-list.

    ``None`` disables the check.
    """

    def __init__(self, acceptable_content_types: Iterable[str] | None = None) -> None:
        self.acceptable_content_types = (
            None
            if acceptable_content_types is None
            else frozenset(acceptable_content_types)
        )

    def intercept_response(self, response: HttpResponse) -> None:
        response.validate_content_type(self.acceptable_content_types)


class LoggingInterceptor:
    """Log requests and responses.

    Also usable as a request modifier, in which case the request is logged
    before the other modifiers see it.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        level: int = logging.INFO,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.level = level

    def log_request(self, request: WireRequest) -> None:
        if not self.logger.isEnabledFor(self.level):
            return
        self.logger.log(self.level, "%s", request)
        for header_field in request.header_fields:
            self.logger.log(self.level, "%s", header_field.encoded)

    def log_response(self, response: HttpResponse) -> None:
        if not self.logger.isEnabledFor(self.level):
            return
        self.logger.log(
            self.level, "%s %s", response.status_code, response.url or response.request.url
        )
        for header_field in response.header_fields:
            self.logger.log(self.level, "%s", header_field.encoded)
        if response.data is not None:
            self.logger.log(
                self.level, "\n%s", response.data.decode("utf-8", errors="replace")
            )
        if response.file_path is not None:
            self.logger.log(self.level, "\n%s", response.file_path)

    def modify(self, request: WireRequest) -> WireRequest:
        self.log_request(request)
        return request

    def intercept(self, request: WireRequest, proceed: Next) -> HttpResponse:
        response = proceed(request)
        self.log_response(response)
        return response
