# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
import pytest

from requestable.networking.client import HttpClient
from requestable.networking.config import HttpClientConfig
from requestable.networking.environment import Environment
from requestable.networking.errors import HTTPStatusError
from requestable.networking.request import HttpRequest
from requestable.testing.mock_transport import (
    MockTransport,
    RequestHandlerRegistry,
    mock_response,
    register_response,
)

ENVIRONMENT = Environment(authority="example.com")


def _client_and_request(status, data=b"", config=None):
    registry = RequestHandlerRegistry()
    client = HttpClient(config or HttpClientConfig(timeout_seconds=5.0), MockTransport(registry))
    request = register_response(
        HttpRequest(ENVIRONMENT, "resource"), mock_response(status, data), registry
    )
    return client, request


def test_404_raises_status_error_with_body():
    client, request = _client_and_request(404, b"not found")

    with pytest.raises(HTTPStatusError) as excinfo:
        client.data(request)

    assert excinfo.value.status_code == 404
    assert excinfo.value.response.data == b"not found"


def test_500_raises_status_error():
    client, request = _client_and_request(500, b"server error")

    with pytest.raises(HTTPStatusError) as excinfo:
        client.data(request)

    assert excinfo.value.status_code == 500


def test_204_is_success_with_empty_body():
    client, request = _client_and_request(204)

    assert client.data(request) == b""


@pytest.mark.parametrize("status", [199, 300, 302, 418])
def test_codes_outside_2xx_are_rejected(status):
    client, request = _client_and_request(status)

    with pytest.raises(HTTPStatusError):
        client.send(request)


def test_302_passes_when_configured_acceptable():
    config = HttpClientConfig(acceptable_status_codes=range(200, 400))
    client, request = _client_and_request(302, b"moved", config)

    response = client.send(request)

    assert response.status_code == 302
    assert response.data == b"moved"
