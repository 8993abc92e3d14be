"""Configuration models for the HttpClient pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

MULTIPART_MEMORY_THRESHOLD = 10_000_000
DEFAULT_STREAM_BUFFER_SIZE = 1024


def _default_headers() -> Mapping[str, str]:
    """Return immutable empty default headers mapping."""

    return MappingProxyType({})


@dataclass(frozen=True)
class HttpClientConfig:
    """Configuration for HttpClient and its default transport.

    Forms whose content length is above ``memory_threshold`` are written to
    a temporary file under ``temp_directory`` before upload.
    """

    user_agent: str | None = None
    default_headers: Mapping[str, str] = field(default_factory=_default_headers)
    verify_tls: bool = True
    connect_timeout_seconds: float | None = None
    read_timeout_seconds: float | None = None
    timeout_seconds: float | None = None
    memory_threshold: int = MULTIPART_MEMORY_THRESHOLD
    stream_buffer_size: int = DEFAULT_STREAM_BUFFER_SIZE
    temp_directory: Path | None = None
    acceptable_status_codes: range = range(200, 300)

    def __post_init__(self) -> None:
        if self.memory_threshold < 0:
            raise ValueError("memory_threshold must be >= 0")
        if self.stream_buffer_size <= 0:
            raise ValueError("stream_buffer_size must be > 0")
        if len(self.acceptable_status_codes) == 0:
            raise ValueError("acceptable_status_codes must not be empty")

        has_connect_timeout = self.connect_timeout_seconds is not None
        has_read_timeout = self.read_timeout_seconds is not None
        if has_connect_timeout != has_read_timeout:
            raise ValueError(
                "connect_timeout_seconds and read_timeout_seconds "
                "must be set together"
            )
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0 when provided")
        if (
            self.connect_timeout_seconds is not None
            and self.connect_timeout_seconds <= 0
        ):
            raise ValueError(
                "connect_timeout_seconds must be > 0 when provided"
            )
        if (
            self.read_timeout_seconds is not None
            and self.read_timeout_seconds <= 0
        ):
            raise ValueError("read_timeout_seconds must be > 0 when provided")

        # Freeze copied headers to avoid post-init mutation side effects.
        object.__setattr__(
            self,
            "default_headers",
            MappingProxyType(dict(self.default_headers)),
        )
        if self.temp_directory is not None:
            object.__setattr__(
                self, "temp_directory", Path(self.temp_directory)
            )

    def resolve_timeout(
        self, override: float | None = None
    ) -> float | tuple[float, float] | None:
        """Resolve timeout preference for one call."""
        if override is not None:
            if override <= 0:
                raise ValueError("timeout override must be > 0 when provided")
            return override
        if (
            self.connect_timeout_seconds is not None
            and self.read_timeout_seconds is not None
        ):
            return (self.connect_timeout_seconds, self.read_timeout_seconds)
        return self.timeout_seconds
