"""Base URL templates and URL resolution.

An :class:`Environment` is immutable: every ``with_*`` / ``appending_*``
call returns a new value. :func:`resolve_url` overlays a request path and
query items on top of it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, NamedTuple, Sequence, Union
from urllib.parse import quote

from .errors import InvalidURLError

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
_AUTHORITY_FORBIDDEN = set(" \t\r\n/?#@\\")

_PATH_SAFE = "!$&'()*+,;=:@-._~"
_QUERY_SAFE = "!$'()*,;:@/?-._~"
_FRAGMENT_SAFE = "!$&'()*+,;=:@/?-._~"
_USERINFO_SAFE = "!$&'()*+,;=-._~"


class QueryItem(NamedTuple):
    name: str
    value: str | None = None

    @property
    def encoded(self) -> str:
        name = quote(self.name, safe=_QUERY_SAFE)
        if self.value is None:
            return name
        return f"{name}={quote(self.value, safe=_QUERY_SAFE)}"


QueryItemsLike = Union[
    Iterable[QueryItem],
    Iterable[tuple],
    Mapping[str, object],
]


def query_items(items: QueryItemsLike | None) -> tuple[QueryItem, ...]:
    """Normalize pairs or a mapping into a tuple of :class:`QueryItem`.

    Mapping values are converted with ``str``; ``None`` stays ``None``.
    """
    if items is None:
        return ()
    if isinstance(items, Mapping):
        pairs: Iterable[tuple] = items.items()
    else:
        pairs = items
    normalized = []
    for name, value in pairs:
        normalized.append(
            QueryItem(str(name), None if value is None else str(value))
        )
    return tuple(normalized)


@dataclass(frozen=True)
class Environment:
    """Reusable URL template: scheme, authority, base path, base query."""

    authority: str = ""
    scheme: str = "https"
    base_path: str = ""
    base_query_items: tuple[QueryItem, ...] = ()
    user: str | None = None
    password: str | None = None
    fragment: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "base_query_items", query_items(self.base_query_items)
        )

    def with_scheme(self, scheme: str) -> Environment:
        return replace(self, scheme=scheme)

    def with_authority(self, authority: str) -> Environment:
        return replace(self, authority=authority)

    with_host = with_authority

    def with_path(self, path: str) -> Environment:
        return replace(self, base_path=path)

    def with_query_items(self, items: QueryItemsLike) -> Environment:
        return replace(self, base_query_items=query_items(items))

    def appending_query_items(self, items: QueryItemsLike) -> Environment:
        return replace(
            self,
            base_query_items=self.base_query_items + query_items(items),
        )

    def with_fragment(self, fragment: str | None) -> Environment:
        return replace(self, fragment=fragment)

    def with_user(self, user: str | None) -> Environment:
        return replace(self, user=user)

    def with_password(self, password: str | None) -> Environment:
        return replace(self, password=password)

    @property
    def url(self) -> str:
        return resolve_url(self)


def join_paths(*paths: str | None) -> str:
    """Join path pieces, dropping empty segments, with one leading slash."""
    segments: list[str] = []
    for path in paths:
        if path:
            segments.extend(s for s in path.split("/") if s)
    if not segments:
        return ""
    return "/" + "/".join(segments)


def encode_query(items: Sequence[QueryItem]) -> str:
    return "&".join(item.encoded for item in items)


def _validate(environment: Environment) -> None:
    if not environment.scheme or not _SCHEME_RE.match(environment.scheme):
        raise InvalidURLError(f"invalid scheme: {environment.scheme!r}")
    if not environment.authority:
        raise InvalidURLError("authority must not be empty")
    if _AUTHORITY_FORBIDDEN.intersection(environment.authority):
        raise InvalidURLError(
            f"invalid authority: {environment.authority!r}"
        )
    if environment.authority.endswith("]"):
        return
    host, _, port = environment.authority.rpartition(":")
    if host and port and not port.isdigit():
        raise InvalidURLError(f"invalid port in {environment.authority!r}")


def resolve_url(
    environment: Environment,
    path: str | None = None,
    items: QueryItemsLike | None = None,
) -> str:
    """Merge ``environment`` with a request path and query items.

    Request query items follow the environment's own, order preserved and
    duplicates kept.
    """
    _validate(environment)
    url = f"{environment.scheme.lower()}://"
    if environment.user is not None:
        url += quote(environment.user, safe=_USERINFO_SAFE)
        if environment.password is not None:
            url += ":" + quote(environment.password, safe=_USERINFO_SAFE)
        url += "@"
    url += environment.authority
    url += quote(join_paths(environment.base_path, path), safe=_PATH_SAFE + "/")
    all_items = environment.base_query_items + query_items(items)
    if all_items:
        url += "?" + encode_query(all_items)
    if environment.fragment is not None:
        url += "#" + quote(environment.fragment, safe=_FRAGMENT_SAFE)
    return url
