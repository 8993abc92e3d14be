# pyright: reportUnknownMemberType=false
import base64
import io
import json
import os
from pathlib import Path

import pytest

from requestable.multipart.form import BodyPart, MultipartForm, part_header_fields
from requestable.networking.cancellation import CancellationToken
from requestable.networking.errors import (
    AccessDeniedError,
    BadURLError,
    FileAlreadyExistsError,
    FileIsDirectoryError,
    InvalidFilenameError,
    LengthMismatchError,
    RequestCancelledError,
    SourceNotFoundError,
    StreamReadError,
)

FIXTURES = Path(__file__).parent / "fixtures"
BOUNDARY = "109AF0987D004171B0A8481D6401B62D"


@pytest.fixture
def profile_form():
    form = MultipartForm(boundary=BOUNDARY)
    profile = json.dumps({"familyName": "Malik", "givenName": "Waqar"})
    image = base64.b64encode(b'{"homePage": "https://www.apple.com"}')
    form.append_data(profile.encode("utf-8"), '"Profile"', mime_type="application/json")
    form.append_data(image, '"Image"', mime_type="application/jpeg;base64")
    return form


def test_encoded_matches_reference_fixture(profile_form):
    expected = (FIXTURES / "multipart_form_data.txt").read_bytes()

    assert profile_form.encoded() == expected
    assert profile_form.encoded_length == len(expected)


def test_written_file_matches_in_memory_encoding(profile_form, tmp_path):
    path = profile_form.write_encoded(tmp_path / "form")

    assert path.read_bytes() == profile_form.encoded()


def test_small_buffer_produces_same_bytes(profile_form, tmp_path):
    form = MultipartForm(boundary=BOUNDARY, buffer_size=3)
    for part in profile_form:
        form.append(part)

    assert form.write_encoded(tmp_path / "form").read_bytes() == profile_form.encoded()


def test_form_headers_and_lengths(profile_form):
    assert len(profile_form) == 2
    assert profile_form.content_length == 45 + 52
    assert profile_form.content_type == f"multipart/form-data; boundary={BOUNDARY}"
    assert profile_form.header_fields.to_dict() == {
        "Content-Type": f"multipart/form-data; boundary={BOUNDARY}",
        "Content-Length": "97",
    }


def test_default_boundary_is_random():
    assert MultipartForm().boundary != MultipartForm().boundary


def test_part_headers_are_written_as_given():
    fields = part_header_fields("avatar", "me.png", "image/png")

    assert [field.encoded for field in fields] == [
        "Content-Disposition: form-data; name=avatar; filename=me.png",
        "Content-Type: image/png",
    ]
    assert part_header_fields("plain")[0].value == "form-data; name=plain"


def test_short_stream_raises_length_mismatch():
    form = MultipartForm(boundary=BOUNDARY)
    form.append_stream(io.BytesIO(b"abc"), 5, "short")

    with pytest.raises(LengthMismatchError) as excinfo:
        form.encoded()

    assert (excinfo.value.expected, excinfo.value.actual) == (5, 3)


def test_long_stream_raises_length_mismatch():
    form = MultipartForm(boundary=BOUNDARY, buffer_size=2)
    form.append_stream(io.BytesIO(b"abcdef"), 3, "long")

    with pytest.raises(LengthMismatchError):
        form.encoded()


def test_failed_write_leaves_no_file(tmp_path):
    form = MultipartForm(boundary=BOUNDARY)
    form.append_stream(io.BytesIO(b"abc"), 4, "short")

    with pytest.raises(LengthMismatchError):
        form.write_encoded(tmp_path / "form")

    assert not (tmp_path / "form").exists()


def test_read_failure_raises_stream_read_error():
    class Broken(io.RawIOBase):
        def readable(self):
            return True

        def read(self, size=-1):
            raise OSError("disk gone")

    form = MultipartForm(boundary=BOUNDARY)
    form.append_stream(Broken(), 1, "broken")

    with pytest.raises(StreamReadError):
        form.encoded()


def test_write_refuses_existing_file(profile_form, tmp_path):
    existing = tmp_path / "form"
    existing.write_bytes(b"keep")

    with pytest.raises(FileAlreadyExistsError):
        profile_form.write_encoded(existing)

    assert existing.read_bytes() == b"keep"


def test_cancellation_between_chunks(profile_form, tmp_path):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(RequestCancelledError):
        profile_form.write_encoded(tmp_path / "form", token)

    assert not (tmp_path / "form").exists()


def test_append_file_infers_name_and_mime_type(tmp_path):
    path = tmp_path / "notes.json"
    path.write_bytes(b'{"a": 1}')
    form = MultipartForm(boundary=BOUNDARY)

    part = form.append_file(path, "notes")

    assert part.content_length == 8
    assert part.header_fields.to_dict() == {
        "Content-Disposition": "form-data; name=notes; filename=notes.json",
        "Content-Type": "application/json",
    }
    assert form.encoded().count(b'{"a": 1}') == 1


def test_append_file_accepts_file_url(tmp_path):
    path = tmp_path / "data.bin"
    path.write_bytes(b"\x00\x01")

    part = MultipartForm().append_file(path.as_uri(), "blob")

    assert part.path == path
    assert part.header_fields["Content-Type"] == "application/octet-stream"


def test_append_file_validation_errors(tmp_path):
    form = MultipartForm()

    with pytest.raises(BadURLError):
        form.append_file("https://example.com/file.txt", "remote")
    with pytest.raises(InvalidFilenameError):
        form.append_file(tmp_path / "no_extension", "file")
    with pytest.raises(SourceNotFoundError):
        form.append_file(tmp_path / "missing.txt", "file")

    directory = tmp_path / "folder.d"
    directory.mkdir()
    with pytest.raises(FileIsDirectoryError):
        form.append_file(directory, "dir")

    assert len(form) == 0


@pytest.mark.skipif(
    not hasattr(os, "geteuid") or os.geteuid() == 0,
    reason="permission bits are not enforced for root",
)
def test_append_file_unreadable_raises_access_denied(tmp_path):
    path = tmp_path / "secret.txt"
    path.write_bytes(b"x")
    path.chmod(0)

    try:
        with pytest.raises(AccessDeniedError):
            MultipartForm().append_file(path, "secret")
    finally:
        path.chmod(0o600)


def test_file_parts_reopen_for_each_encoding(tmp_path):
    path = tmp_path / "a.txt"
    path.write_bytes(b"hello")
    form = MultipartForm(boundary=BOUNDARY)
    form.append_file(path, "a")

    assert form.encoded() == form.encoded()


def test_body_part_rejects_negative_length():
    with pytest.raises(ValueError):
        BodyPart(part_header_fields("x"), -1, b"")
