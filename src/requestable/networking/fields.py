"""Ordered, case-insensitive HTTP header field collections.

``HeaderFields`` keeps every field in insertion order and allows repeated
names. Lookups fold repeated values into one string joined with ``", "``
(``"; "`` for ``Cookie``).
"""

from __future__ import annotations

import os
import platform
import sys
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import Callable, Iterable, Iterator, Mapping, overload

from .quality import Quality

LIBRARY_NAME = "requestable"
MAX_ACCEPT_LANGUAGES = 6


class HeaderName:
    ACCEPT = "Accept"
    ACCEPT_ENCODING = "Accept-Encoding"
    ACCEPT_LANGUAGE = "Accept-Language"
    AUTHORIZATION = "Authorization"
    CACHE_CONTROL = "Cache-Control"
    CONTENT_DISPOSITION = "Content-Disposition"
    CONTENT_LENGTH = "Content-Length"
    CONTENT_TYPE = "Content-Type"
    COOKIE = "Cookie"
    USER_AGENT = "User-Agent"
    TEST_IDENTIFIER = "X-Test-Identifier"


def canonical_name(name: str) -> str:
    return name.lower()


@dataclass(frozen=True)
class HeaderField:
    """A single header line. ``name`` keeps the caller's spelling."""

    name: str
    value: str

    def __post_init__(self) -> None:
        if not self.name or any(c in self.name for c in " \t\r\n:"):
            raise ValueError(f"invalid header field name: {self.name!r}")

    @property
    def canonical_name(self) -> str:
        return canonical_name(self.name)

    def matches(self, name: str) -> bool:
        return self.canonical_name == canonical_name(name)

    @property
    def encoded(self) -> str:
        return f"{self.name}: {self.value}"

    @classmethod
    def accept(cls, value: str) -> HeaderField:
        return cls(HeaderName.ACCEPT, value)

    @classmethod
    def authorization(cls, value: str) -> HeaderField:
        return cls(HeaderName.AUTHORIZATION, value)

    @classmethod
    def bearer_token(cls, token: str) -> HeaderField:
        return cls.authorization(f"Bearer {token}")

    @classmethod
    def content_type(cls, value: str) -> HeaderField:
        return cls(HeaderName.CONTENT_TYPE, value)

    @classmethod
    def content_disposition(cls, value: str) -> HeaderField:
        return cls(HeaderName.CONTENT_DISPOSITION, value)

    @classmethod
    def user_agent(cls, value: str) -> HeaderField:
        return cls(HeaderName.USER_AGENT, value)


def _separator(name: str) -> str:
    return "; " if canonical_name(name) == "cookie" else ", "


class HeaderFields:
    """Ordered multimap of :class:`HeaderField`."""

    def __init__(self, fields: Iterable[HeaderField] = ()) -> None:
        self._fields: list[HeaderField] = list(fields)

    @classmethod
    def from_dict(cls, raw: Mapping[str, str]) -> HeaderFields:
        """Build fields from a plain ``{name: value}`` mapping."""
        return cls(HeaderField(name, value) for name, value in raw.items())

    def copy(self) -> HeaderFields:
        return HeaderFields(self._fields)

    def append(self, field: HeaderField) -> None:
        """Add ``field`` after the existing ones, never replacing."""
        self._fields.append(field)

    def extend(self, fields: Iterable[HeaderField]) -> None:
        self._fields.extend(fields)

    def set(self, name: str, value: str) -> None:
        """Replace every field called ``name`` with a single entry.

        The new entry takes the position of the first existing one, or is
        appended when the name is absent.
        """
        replacement = HeaderField(name, value)
        updated: list[HeaderField] = []
        placed = False
        for field in self._fields:
            if field.matches(name):
                if not placed:
                    updated.append(replacement)
                    placed = True
                continue
            updated.append(field)
        if not placed:
            updated.append(replacement)
        self._fields = updated

    def remove(self, name: str) -> None:
        self._fields = [f for f in self._fields if not f.matches(name)]

    def get_all(self, name: str) -> list[str]:
        return [f.value for f in self._fields if f.matches(name)]

    def get(self, name: str, default: str | None = None) -> str | None:
        """Return the combined value for ``name`` or ``default``."""
        values = self.get_all(name)
        if not values:
            return default
        return _separator(name).join(values)

    def contains(
        self, item: str | HeaderField | Callable[[str, str], bool]
    ) -> bool:
        """Check for a name, an exact field, or a ``(name, value)`` predicate.

        Predicates see the combined view, one call per distinct name.
        """
        if isinstance(item, HeaderField):
            return any(
                f.matches(item.name) and f.value == item.value
                for f in self._fields
            )
        if isinstance(item, str):
            return item in self
        return any(item(name, value) for name, value in self.to_dict().items())

    @property
    def combined_fields(self) -> dict[str, str]:
        """Map canonical (lower-case) names to their combined values."""
        combined: dict[str, str] = {}
        for field in self._fields:
            key = field.canonical_name
            if key in combined:
                combined[key] = (
                    f"{combined[key]}{_separator(key)}{field.value}"
                )
            else:
                combined[key] = field.value
        return combined

    def to_dict(self) -> dict[str, str]:
        """Map raw names (first spelling seen) to combined values."""
        raw_names: dict[str, str] = {}
        for field in self._fields:
            raw_names.setdefault(field.canonical_name, field.name)
        return {
            raw_names[key]: value
            for key, value in self.combined_fields.items()
        }

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return any(f.matches(name) for f in self._fields)

    @overload
    def __getitem__(self, key: int) -> HeaderField: ...

    @overload
    def __getitem__(self, key: str) -> str: ...

    def __getitem__(self, key):
        if isinstance(key, int):
            return self._fields[key]
        value = self.get(key)
        if value is None:
            raise KeyError(key)
        return value

    def __iter__(self) -> Iterator[HeaderField]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __bool__(self) -> bool:
        return bool(self._fields)

    __hash__ = None  # type: ignore[assignment]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderFields):
            return NotImplemented
        return self._fields == other._fields

    def __repr__(self) -> str:
        return f"HeaderFields({self._fields!r})"


def _library_version() -> str:
    try:
        return metadata.version(LIBRARY_NAME)
    except metadata.PackageNotFoundError:
        return "0"


def _os_name() -> str:
    system = platform.system()
    return {"Darwin": "macOS"}.get(system, system or "Unknown")


def user_agent(
    app_name: str | None = None,
    app_version: str | None = None,
    bundle_id: str | None = None,
    build: str | None = None,
) -> str:
    """Return ``<app>/<version> (<bundle>; build:<build>; <os> <os-version>) <lib>``."""
    name = app_name or Path(sys.argv[0] or "").stem or "Unknown App"
    version = app_version or "Unknown-AppVersion"
    bundle = bundle_id or "Unknown-Bundle"
    build_number = build or "Unknown-Build"
    os_info = f"{_os_name()} {platform.release()}".strip()
    return (
        f"{name}/{version} ({bundle}; build:{build_number}; {os_info}) "
        f"{LIBRARY_NAME}/{_library_version()}"
    )


def _language_tag(value: str) -> str | None:
    tag = value.split(".", 1)[0].split("@", 1)[0].strip()
    if not tag or tag in ("C", "POSIX"):
        return None
    return tag.replace("_", "-")


def preferred_languages(environ: Mapping[str, str] | None = None) -> list[str]:
    """Return the user's preferred languages, most preferred first.

    Reads ``LANGUAGE`` (colon separated) then ``LC_ALL``, ``LC_MESSAGES`` and
    ``LANG``. Falls back to ``["en"]``.
    """
    env = os.environ if environ is None else environ
    candidates = env.get("LANGUAGE", "").split(":")
    candidates += [env.get(key, "") for key in ("LC_ALL", "LC_MESSAGES", "LANG")]
    languages: list[str] = []
    for candidate in candidates:
        tag = _language_tag(candidate)
        if tag and tag not in languages:
            languages.append(tag)
    return languages or ["en"]


def default_user_agent() -> HeaderField:
    return HeaderField.user_agent(user_agent())


def default_accept_encoding() -> HeaderField:
    return HeaderField(
        HeaderName.ACCEPT_ENCODING,
        Quality.from_values(["br", "gzip", "deflate"]).encoded,
    )


def default_accept_language() -> HeaderField:
    languages = preferred_languages()[:MAX_ACCEPT_LANGUAGES]
    return HeaderField(
        HeaderName.ACCEPT_LANGUAGE, Quality.from_values(languages).encoded
    )


def default_headers() -> HeaderFields:
    """User-Agent, Accept-Encoding and Accept-Language defaults."""
    return HeaderFields(
        [default_user_agent(), default_accept_encoding(), default_accept_language()]
    )
