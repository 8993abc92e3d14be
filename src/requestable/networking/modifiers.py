"""Request modifiers applied in order before a request is sent."""

from __future__ import annotations

from typing import Callable, Iterable, Mapping, Protocol, Sequence, runtime_checkable

from .fields import (
    HeaderField,
    HeaderFields,
    default_accept_encoding,
    default_accept_language,
    default_user_agent,
)
from .request import WireRequest


@runtime_checkable
class RequestModifier(Protocol):
    """Turns a wire request into an updated one.

    Modifiers must not assume any header is already present.
    """

    def modify(self, request: WireRequest) -> WireRequest: ...


def apply_modifiers(
    request: WireRequest, modifiers: Iterable[RequestModifier]
) -> WireRequest:
    """Fold ``modifiers`` over ``request`` left to right."""
    for modifier in modifiers:
        request = modifier.modify(request)
    return request


class HeaderModifier:
    """Write a fixed set of header fields onto each request.

    With ``replace_existing`` false (the default) a field is only written
    when the request has no header of that name, so caller-supplied values
    win. With ``replace_existing`` true every field is overwritten.
    """

    def __init__(
        self,
        header_fields: HeaderFields | Iterable[HeaderField] | Mapping[str, str],
        replace_existing: bool = False,
    ) -> None:
        if isinstance(header_fields, Mapping):
            header_fields = HeaderFields.from_dict(header_fields)
        self.header_fields = HeaderFields(header_fields)
        self.replace_existing = replace_existing

    def _groups(self) -> list[list[HeaderField]]:
        groups: dict[str, list[HeaderField]] = {}
        for header_field in self.header_fields:
            groups.setdefault(header_field.name.lower(), []).append(header_field)
        return list(groups.values())

    def modify(self, request: WireRequest) -> WireRequest:
        fields = request.header_fields.copy()
        # all values of one name are written together
        for group in self._groups():
            name = group[0].name
            if self.replace_existing or name not in fields:
                fields.remove(name)
                fields.extend(group)
        return request.with_header_fields(fields)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.header_fields!r}, "
            f"replace_existing={self.replace_existing})"
        )


class DefaultHeadersModifier:
    """Fill in User-Agent, Accept-Encoding and Accept-Language when absent.

    Values are computed when the modifier runs, so a changed locale
    environment is picked up by later requests.
    """

    factories: Sequence[Callable[[], HeaderField]] = (
        default_user_agent,
        default_accept_encoding,
        default_accept_language,
    )

    def __init__(self, replace_existing: bool = False) -> None:
        self.replace_existing = replace_existing

    def modify(self, request: WireRequest) -> WireRequest:
        fields = request.header_fields.copy()
        for factory in self.factories:
            header_field = factory()
            if self.replace_existing or header_field.name not in fields:
                fields.set(header_field.name, header_field.value)
        return request.with_header_fields(fields)


class FunctionModifier:
    """Adapt a plain ``WireRequest -> WireRequest`` callable."""

    def __init__(self, function: Callable[[WireRequest], WireRequest]) -> None:
        self.function = function

    def modify(self, request: WireRequest) -> WireRequest:
        return self.function(request)
