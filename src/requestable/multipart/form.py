"""multipart/form-data encoding.

Encoded layout, with ``X`` the boundary::

    <form header lines>\\r\\n
    --X\\r\\n
    <part 0 header lines>\\r\\n
    <part 0 content>
    \\r\\n--X\\r\\n
    <part 1 header lines>\\r\\n
    <part 1 content>
    \\r\\n--X--\\r\\n

Every header line is ``Name: Value\\r\\n``. A part's declared content length
must equal the number of bytes its source yields, otherwise encoding fails
with :class:`LengthMismatchError`.
"""

from __future__ import annotations

import io
import logging
import mimetypes
import os
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Sequence, overload
from urllib.parse import unquote, urlsplit

from requestable.networking.cancellation import CancellationToken, raise_if_cancelled
from requestable.networking.config import DEFAULT_STREAM_BUFFER_SIZE
from requestable.networking.content_types import ContentType
from requestable.networking.errors import (
    AccessDeniedError,
    BadURLError,
    FileAlreadyExistsError,
    FileIsDirectoryError,
    FileSizeUnavailableError,
    InvalidFilenameError,
    LengthMismatchError,
    SourceNotFoundError,
    StreamCreationError,
    StreamReadError,
    StreamWriteError,
)
from requestable.networking.fields import HeaderField, HeaderFields, HeaderName

logger = logging.getLogger(__name__)

CRLF = b"\r\n"


def default_boundary() -> str:
    return uuid.uuid4().hex.upper()


def mime_type_for(path: str | Path) -> str:
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or ContentType.OCTET_STREAM


def _header_block(header_fields: HeaderFields) -> bytes:
    lines = b"".join(
        field.encoded.encode("utf-8") + CRLF for field in header_fields
    )
    return lines + CRLF


def part_header_fields(
    name: str, file_name: str | None = None, mime_type: str | None = None
) -> HeaderFields:
    """Content-Disposition and, when given, Content-Type for one part.

    ``name`` and ``file_name`` are written as supplied; quote them yourself
    if the receiver expects quoted parameters.
    """
    disposition = f"{ContentType.FORM_DATA}; name={name}"
    if file_name is not None:
        disposition = f"{disposition}; filename={file_name}"
    header_fields = HeaderFields([HeaderField.content_disposition(disposition)])
    if mime_type is not None:
        header_fields.append(HeaderField.content_type(mime_type))
    return header_fields


@dataclass
class BodyPart:
    """One named part.

    ``source`` is the in-memory content, an open binary stream, or a
    callable opening one. Open streams are read once and left open.
    """

    header_fields: HeaderFields
    content_length: int
    source: bytes | BinaryIO | Callable[[], BinaryIO]
    path: Path | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.content_length < 0:
            raise ValueError("content_length must be >= 0")

    @property
    def header_block(self) -> bytes:
        return _header_block(self.header_fields)

    def open(self) -> tuple[BinaryIO, bool]:
        """Return the content stream and whether the caller must close it."""
        if isinstance(self.source, (bytes, bytearray)):
            return io.BytesIO(self.source), True
        if hasattr(self.source, "read"):
            return self.source, False  # type: ignore[return-value]
        try:
            return self.source(), True  # type: ignore[operator]
        except OSError as exc:
            raise StreamCreationError(self.path or "<stream>") from exc


def _copy_part(
    part: BodyPart,
    write: Callable[[bytes], object],
    buffer_size: int,
    cancellation: CancellationToken | None = None,
) -> None:
    stream, owned = part.open()
    copied = 0
    try:
        while True:
            raise_if_cancelled(cancellation)
            try:
                chunk = stream.read(buffer_size)
            except OSError as exc:
                raise StreamReadError(str(exc)) from exc
            if not chunk:
                break
            copied += len(chunk)
            if copied > part.content_length:
                raise LengthMismatchError(part.content_length, copied)
            write(chunk)
    finally:
        if owned:
            stream.close()
    if copied != part.content_length:
        raise LengthMismatchError(part.content_length, copied)


def _file_path(file: str | Path) -> Path:
    if isinstance(file, Path):
        return file
    if "://" not in file:
        return Path(file)
    parts = urlsplit(file)
    if parts.scheme != "file" or parts.netloc not in ("", "localhost"):
        raise BadURLError(file)
    return Path(unquote(parts.path))


class MultipartForm(Sequence[BodyPart]):
    """Ordered collection of body parts sharing one boundary."""

    def __init__(
        self,
        boundary: str | None = None,
        buffer_size: int = DEFAULT_STREAM_BUFFER_SIZE,
    ) -> None:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be > 0")
        self.boundary = boundary or default_boundary()
        self.buffer_size = buffer_size
        self._parts: list[BodyPart] = []

    @property
    def content_type(self) -> str:
        return f"{ContentType.MULTIPART_FORM}; boundary={self.boundary}"

    @property
    def content_length(self) -> int:
        """Sum of the parts' content lengths, boundaries and headers excluded."""
        return sum(part.content_length for part in self._parts)

    @property
    def header_fields(self) -> HeaderFields:
        return HeaderFields(
            [
                HeaderField.content_type(self.content_type),
                HeaderField(HeaderName.CONTENT_LENGTH, str(self.content_length)),
            ]
        )

    @property
    def encoded_length(self) -> int:
        """Length in bytes of the full encoded form."""
        total = len(_header_block(self.header_fields))
        for index, part in enumerate(self._parts):
            total += len(self._opening_boundary(index))
            total += len(part.header_block) + part.content_length
        return total + len(self._closing_boundary())

    def append(self, part: BodyPart) -> None:
        self._parts.append(part)

    def append_data(
        self,
        data: bytes,
        name: str,
        file_name: str | None = None,
        mime_type: str | None = None,
    ) -> BodyPart:
        part = BodyPart(
            part_header_fields(name, file_name, mime_type), len(data), bytes(data)
        )
        self.append(part)
        return part

    def append_stream(
        self,
        stream: BinaryIO | Callable[[], BinaryIO],
        length: int,
        name: str,
        file_name: str | None = None,
        mime_type: str | None = None,
    ) -> BodyPart:
        """Add a part read from ``stream``, which must yield ``length`` bytes."""
        part = BodyPart(part_header_fields(name, file_name, mime_type), length, stream)
        self.append(part)
        return part

    def append_file(
        self,
        file: str | Path,
        name: str,
        file_name: str | None = None,
        mime_type: str | None = None,
    ) -> BodyPart:
        """Add a part streamed from a local file.

        ``file`` is a path or a ``file://`` URL. Without ``file_name`` the
        path's last component is used and the MIME type is inferred from its
        extension. The file is checked here, before any byte is read.
        """
        path = _file_path(file)
        if file_name is None:
            file_name = path.name
            if not file_name or not path.suffix:
                raise InvalidFilenameError(path)
            if mime_type is None:
                mime_type = mime_type_for(path)
        elif mime_type is None:
            mime_type = mime_type_for(file_name)

        if not path.exists():
            raise SourceNotFoundError(path)
        if path.is_dir():
            raise FileIsDirectoryError(path)
        if not os.access(path, os.R_OK):
            raise AccessDeniedError(path)
        try:
            length = path.stat().st_size
        except OSError as exc:
            raise FileSizeUnavailableError(path) from exc
        try:
            open(path, "rb").close()
        except OSError as exc:
            raise StreamCreationError(path) from exc

        part = BodyPart(
            part_header_fields(name, file_name, mime_type),
            length,
            lambda: open(path, "rb"),
            path=path,
        )
        self.append(part)
        return part

    def _opening_boundary(self, index: int) -> bytes:
        prefix = b"" if index == 0 else CRLF
        return prefix + b"--" + self.boundary.encode("ascii") + CRLF

    def _closing_boundary(self) -> bytes:
        return CRLF + b"--" + self.boundary.encode("ascii") + b"--" + CRLF

    def _write_to(
        self,
        write: Callable[[bytes], object],
        cancellation: CancellationToken | None = None,
    ) -> None:
        write(_header_block(self.header_fields))
        for index, part in enumerate(self._parts):
            write(self._opening_boundary(index))
            write(part.header_block)
            _copy_part(part, write, self.buffer_size, cancellation)
        write(self._closing_boundary())

    def encoded(self, cancellation: CancellationToken | None = None) -> bytes:
        """Encode the whole form in memory."""
        buffer = io.BytesIO()
        self._write_to(buffer.write, cancellation)
        return buffer.getvalue()

    def write_encoded(
        self, path: str | Path, cancellation: CancellationToken | None = None
    ) -> Path:
        """Stream the encoded form into a new file at ``path``.

        Refuses to overwrite an existing file. A partially written file is
        removed when encoding fails.
        """
        path = _file_path(path)
        try:
            handle = open(path, "xb")
        except FileExistsError as exc:
            raise FileAlreadyExistsError(path) from exc
        except OSError as exc:
            raise StreamCreationError(path) from exc

        def write(chunk: bytes) -> None:
            try:
                handle.write(chunk)
            except OSError as exc:
                raise StreamWriteError(str(exc)) from exc

        try:
            with handle:
                self._write_to(write, cancellation)
        except BaseException:
            try:
                path.unlink()
            except OSError as exc:
                logger.warning("Unable to remove partial form %s: %s", path, exc)
            raise
        return path

    @overload
    def __getitem__(self, index: int) -> BodyPart: ...

    @overload
    def __getitem__(self, index: slice) -> list[BodyPart]: ...

    def __getitem__(self, index):
        return self._parts[index]

    def __iter__(self) -> Iterator[BodyPart]:
        return iter(self._parts)

    def __len__(self) -> int:
        return len(self._parts)

    def __repr__(self) -> str:
        return f"MultipartForm(boundary={self.boundary!r}, parts={len(self)})"
