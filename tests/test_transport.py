# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
# pyright: reportUnknownVariableType=false, reportMissingParameterType=false
# pyright: reportUnknownArgumentType=false
from unittest.mock import Mock, patch

import pytest
import requests

from requestable.networking.config import HttpClientConfig
from requestable.networking.environment import Environment
from requestable.networking.errors import (
    ConnectionFailedError,
    RequestTimeoutError,
    TransportError,
)
from requestable.networking.fields import HeaderField
from requestable.networking.request import HttpRequest
from requestable.networking.transport import RequestsTransport
from requestable.networking.trust import ServerTrustEvaluator, TrustEvaluatingAdapter

ENVIRONMENT = Environment(authority="example.com")


@pytest.fixture
def config():
    return HttpClientConfig(
        user_agent="TestAgent/1.0",
        default_headers={"X-Test": "yes"},
        timeout_seconds=5.0,
        stream_buffer_size=2,
    )


@pytest.fixture
def transport(config):
    return RequestsTransport(config)


def _prepared(path="items", **kwargs):
    return HttpRequest(ENVIRONMENT, path, **kwargs).transport_request


def _mock_response(
    *,
    content: bytes = b"",
    status: int = 200,
    url: str = "https://example.com/items",
    reason: str = "OK",
):
    response = Mock()
    response.content = content
    response.status_code = status
    response.url = url
    response.reason = reason
    response.elapsed.total_seconds.return_value = 0.1
    response.headers = {"Content-Type": "application/json"}
    return response


def test_init_sets_user_agent_and_default_headers(transport):
    assert transport.session.headers["User-Agent"] == "TestAgent/1.0"
    assert transport.session.headers["X-Test"] == "yes"


def test_trust_evaluator_mounts_adapter_for_https(config):
    transport = RequestsTransport(config, trust_evaluator=ServerTrustEvaluator())

    assert isinstance(transport.session.get_adapter("https://example.com"), TrustEvaluatingAdapter)
    assert not isinstance(
        transport.session.get_adapter("http://example.com"), TrustEvaluatingAdapter
    )


@patch("requests.Session.send")
def test_send_returns_buffered_response(mock_send, transport):
    mock_send.return_value = _mock_response(content=b"hello")
    prepared = _prepared()

    result = transport.send(prepared, timeout=5.0)

    assert result.status_code == 200
    assert result.data == b"hello"
    assert result.url == "https://example.com/items"
    assert result.reason == "OK"
    assert result.elapsed_seconds == 0.1
    assert result.header_fields["Content-Type"] == "application/json"
    mock_send.assert_called_once_with(
        prepared, timeout=5.0, allow_redirects=True, stream=False, verify=True
    )


@patch("requests.Session.send")
def test_session_headers_fill_but_never_override(mock_send, transport):
    mock_send.return_value = _mock_response()
    prepared = HttpRequest(ENVIRONMENT).setting_header(
        HeaderField("X-Test", "caller")
    ).transport_request

    transport.send(prepared)

    assert prepared.headers["X-Test"] == "caller"
    assert prepared.headers["User-Agent"] == "TestAgent/1.0"


@patch("requests.Session.send")
def test_upload_bytes_sets_body_and_length(mock_send, transport):
    mock_send.return_value = _mock_response(content=b"ok")
    prepared = _prepared(method="POST")

    result = transport.upload(prepared, body=b"payload")

    assert result.data == b"ok"
    assert prepared.body == b"payload"
    assert prepared.headers["Content-Length"] == "7"


@patch("requests.Session.send")
def test_upload_file_streams_open_handle(mock_send, transport, tmp_path):
    path = tmp_path / "upload.bin"
    path.write_bytes(b"file body")
    sent = []

    def send(prepared, **kwargs):
        sent.append(prepared.body.read())
        return _mock_response()

    mock_send.side_effect = send
    prepared = _prepared(method="PUT")

    transport.upload(prepared, file_path=path)

    assert sent == [b"file body"]
    assert prepared.headers["Content-Length"] == "9"


@patch("requests.Session.send")
def test_upload_empty_file_is_not_chunked(mock_send, transport, tmp_path):
    path = tmp_path / "empty.bin"
    path.write_bytes(b"")
    mock_send.return_value = _mock_response()
    prepared = _prepared(method="POST")

    transport.upload(prepared, file_path=path)

    assert "Transfer-Encoding" not in prepared.headers
    assert prepared.headers["Content-Length"] == "0"


def test_upload_requires_exactly_one_source(transport):
    with pytest.raises(ValueError):
        transport.upload(_prepared())
    with pytest.raises(ValueError):
        transport.upload(_prepared(), body=b"a", file_path="b")


@patch("requests.Session.send")
def test_download_writes_chunks(mock_send, transport, tmp_path):
    response = _mock_response()
    response.iter_content.return_value = [b"ab", b"cd"]
    mock_send.return_value = response
    destination = tmp_path / "download.bin"

    result = transport.download(_prepared(), destination)

    assert destination.read_bytes() == b"abcd"
    assert result.file_path == destination
    assert result.data is None
    response.iter_content.assert_called_once_with(chunk_size=2)
    response.close.assert_called_once_with()
    assert mock_send.call_args.kwargs["stream"] is True


@patch("requests.Session.send")
def test_download_failure_removes_partial_file(mock_send, transport, tmp_path):
    def chunks():
        yield b"abc"
        raise requests.exceptions.ConnectionError("reset")

    response = _mock_response()
    response.iter_content.return_value = chunks()
    mock_send.return_value = response
    destination = tmp_path / "download.bin"

    with pytest.raises(ConnectionFailedError):
        transport.download(_prepared(), destination)

    assert not destination.exists()
    response.close.assert_called_once_with()


@patch("requests.Session.send")
def test_download_into_missing_directory_fails_cleanly(mock_send, transport, tmp_path):
    response = _mock_response()
    mock_send.return_value = response

    with pytest.raises(TransportError):
        transport.download(_prepared(), tmp_path / "missing" / "download.bin")

    response.iter_content.assert_not_called()
    response.close.assert_called_once_with()


@patch("requests.Session.send")
def test_open_byte_stream_is_lazy(mock_send, transport):
    response = _mock_response()
    response.iter_content.return_value = iter([b"a", b"b"])
    mock_send.return_value = response

    stream = transport.open_byte_stream(_prepared())

    assert list(stream.chunks) == [b"a", b"b"]
    stream.close()
    response.close.assert_called_once_with()


@pytest.mark.parametrize(
    ("raised", "expected"),
    [
        (requests.exceptions.ReadTimeout("slow"), RequestTimeoutError),
        (requests.exceptions.ConnectTimeout("slow"), RequestTimeoutError),
        (requests.exceptions.ConnectionError("refused"), ConnectionFailedError),
        (requests.exceptions.TooManyRedirects("loop"), TransportError),
    ],
)
@patch("requests.Session.send")
def test_request_exceptions_are_mapped(mock_send, raised, expected, transport):
    mock_send.side_effect = raised

    with pytest.raises(expected) as excinfo:
        transport.send(_prepared())

    assert excinfo.value.__cause__ is raised


def test_connect_timeout_maps_to_timeout_not_connection_failure():
    assert issubclass(RequestTimeoutError, TransportError)
    assert not issubclass(RequestTimeoutError, ConnectionFailedError)
