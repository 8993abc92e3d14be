"""Request descriptors and their derived wire/transport requests.

A :class:`HttpRequest` describes one logical call. Nothing derived from it
is cached: ``url``, ``wire_request`` and ``transport_request`` are computed
on every access and have no side effects.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Generic, Optional, TypeVar

import requests

from .content_types import ContentType
from .environment import (
    Environment,
    QueryItem,
    QueryItemsLike,
    join_paths,
    query_items as normalize_query_items,
    resolve_url,
)
from .errors import DecodeError, RequestConstructionError
from .fields import HeaderField, HeaderFields, HeaderName

logger = logging.getLogger(__name__)

ResultType = TypeVar("ResultType")
Transformer = Callable[[bytes], ResultType]


def raw_bytes(data: bytes) -> bytes:
    return data


def no_content(data: bytes) -> None:
    return None


def text_decoder(encoding: str = "utf-8") -> Transformer[str]:
    def decode(data: bytes) -> str:
        return data.decode(encoding)

    return decode


def json_decoder(
    factory: Callable[[Any], ResultType] | None = None,
) -> Transformer[Any]:
    """Decode JSON, optionally passing the document through ``factory``."""

    def decode(data: bytes) -> Any:
        document = json.loads(data)
        return factory(document) if factory is not None else document

    return decode


@dataclass(frozen=True)
class WireRequest:
    """Method, absolute URL and header fields. No body."""

    method: str
    url: str
    header_fields: HeaderFields = field(default_factory=HeaderFields)

    # equal by value but unhashable, since header_fields is mutable
    __hash__ = None  # type: ignore[assignment]

    def with_header_fields(self, header_fields: HeaderFields) -> WireRequest:
        return replace(self, header_fields=header_fields)

    def prepare(self, body: bytes | None = None) -> requests.PreparedRequest:
        """Build the transport-ready request with ``body`` attached."""
        try:
            return requests.Request(
                method=self.method,
                url=self.url,
                headers=self.header_fields.to_dict(),
                data=body,
            ).prepare()
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise RequestConstructionError(str(exc)) from exc

    def __str__(self) -> str:
        return f"{self.method} {self.url}"


@dataclass(frozen=True)
class HttpRequest(Generic[ResultType]):
    """Description of one logical call returning ``ResultType``.

    Without a ``response_transformer`` the response body is returned as
    ``bytes``.
    """

    environment: Environment
    path: str | None = None
    method: str = "GET"
    query_items: tuple[QueryItem, ...] = ()
    header_fields: Optional[HeaderFields] = None
    body: bytes | None = None
    response_transformer: Optional[Transformer[ResultType]] = None

    __hash__ = None  # type: ignore[assignment]

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(
            self, "query_items", normalize_query_items(self.query_items)
        )
        if self.header_fields is not None:
            object.__setattr__(self, "header_fields", self.header_fields.copy())

    @property
    def url(self) -> str:
        return resolve_url(self.environment, self.path, self.query_items)

    @property
    def wire_request(self) -> WireRequest:
        url = self.url
        fields = self.header_fields.copy() if self.header_fields else HeaderFields()
        return WireRequest(self.method, url, fields)

    @property
    def transport_request(self) -> requests.PreparedRequest:
        return self.wire_request.prepare(self.body)

    def transform(self, data: bytes) -> ResultType:
        """Run the response transformer on ``data``."""
        if self.response_transformer is None:
            return data  # type: ignore[return-value]
        try:
            return self.response_transformer(data)
        except DecodeError:
            raise
        except Exception as exc:
            logger.debug("Transformer failed for %s: %s", self.url, exc)
            raise DecodeError(str(exc)) from exc

    def appending_header(self, header_field: HeaderField) -> HttpRequest[ResultType]:
        fields = self.header_fields.copy() if self.header_fields else HeaderFields()
        fields.append(header_field)
        return replace(self, header_fields=fields)

    def setting_header(self, header_field: HeaderField) -> HttpRequest[ResultType]:
        fields = self.header_fields.copy() if self.header_fields else HeaderFields()
        fields.set(header_field.name, header_field.value)
        return replace(self, header_fields=fields)

    def appending_query_item(
        self, name: str, value: str | None = None
    ) -> HttpRequest[ResultType]:
        return replace(
            self, query_items=self.query_items + (QueryItem(name, value),)
        )

    def appending_query_items(self, items: QueryItemsLike) -> HttpRequest[ResultType]:
        return replace(
            self, query_items=self.query_items + normalize_query_items(items)
        )

    def with_body(
        self, body: bytes | None, content_type: str | None = None
    ) -> HttpRequest[ResultType]:
        updated = replace(self, body=body)
        if content_type is not None:
            updated = updated.setting_header(HeaderField.content_type(content_type))
        return updated

    def with_json_body(self, document: Any) -> HttpRequest[ResultType]:
        body = json.dumps(document).encode("utf-8")
        return self.with_body(body, content_type=ContentType.JSON)

    @property
    def content_type(self) -> str | None:
        if not self.header_fields:
            return None
        return self.header_fields.get(HeaderName.CONTENT_TYPE)

    def __str__(self) -> str:
        path = join_paths(self.environment.base_path, self.path) or "/"
        return f"{self.method} {self.environment.authority}{path}"
