# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
# pyright: reportUnknownVariableType=false, reportMissingParameterType=false
from unittest.mock import Mock, patch

import pytest
import requests

from courier.networking.config import HttpClientConfig
from courier.networking.errors import (
    ConnectionFailedError,
    RequestTimeoutError,
    TransportError,
)
from courier.networking.transport import SessionTransport, Transport


@pytest.fixture
def config():
    return HttpClientConfig(base_url="http://example.com", timeout_seconds=5.0)


@pytest.fixture
def transport(config):
    return SessionTransport(config)


def _prepared(url: str = "http://example.com/items") -> requests.PreparedRequest:
    return requests.Request("GET", url).prepare()


def _mock_response(
    *,
    content: bytes = b"",
    status: int = 200,
    url: str = "http://example.com/items",
    reason: str = "OK",
):
    response = Mock()
    response.status_code = status
    response.url = url
    response.reason = reason
    response.elapsed.total_seconds.return_value = 0.1
    response.headers = {"Content-Type": "application/json"}
    response.raw.version = 11
    response.raw.read.return_value = content
    return response


def test_session_transport_satisfies_protocol(transport):
    assert isinstance(transport, Transport)


def test_pool_defaults_applied(transport):
    adapter = transport._session.get_adapter("https://example.com")

    assert transport.config.max_idle_connections == 100
    assert transport.config.max_idle_connections_per_host == 100
    assert transport.config.idle_timeout_seconds == 90.0
    assert adapter._pool_connections == 100
    assert adapter._pool_maxsize == 100


def test_pool_settings_are_honoured():
    transport = SessionTransport(
        HttpClientConfig(max_idle_connections=4, max_idle_connections_per_host=2)
    )
    adapter = transport._session.get_adapter("http://example.com")

    assert adapter._pool_connections == 4
    assert adapter._pool_maxsize == 2


@patch("requests.Session.send")
def test_send_wraps_streamed_response(mock_send, transport):
    mock_send.return_value = _mock_response(content=b"hello", status=201)
    request = _prepared()

    response = transport.send(request)

    assert response.status_code == 201
    assert response.status == "201 OK"
    assert response.http_version == "HTTP/1.1"
    assert response.elapsed_seconds == 0.1
    assert response.headers["content-type"] == "application/json"
    assert response.read() == b"hello"
    mock_send.assert_called_once_with(
        request,
        stream=True,
        timeout=5.0,
        verify=True,
        allow_redirects=True,
    )


@patch("requests.Session.send")
def test_send_uses_connect_read_timeout_and_tls_setting(mock_send):
    transport = SessionTransport(
        HttpClientConfig(
            connect_timeout_seconds=1.0,
            read_timeout_seconds=3.0,
            verify_tls=False,
        )
    )
    mock_send.return_value = _mock_response()
    request = _prepared()

    transport.send(request)

    mock_send.assert_called_once_with(
        request,
        stream=True,
        timeout=(1.0, 3.0),
        verify=False,
        allow_redirects=True,
    )


@patch("requests.Session.send")
def test_closing_body_releases_response(mock_send, transport):
    raw_response = _mock_response(content=b"hello")
    mock_send.return_value = raw_response

    response = transport.send(_prepared())
    response.close()

    raw_response.close.assert_called_once_with()


@pytest.mark.parametrize(
    ("raised", "expected"),
    [
        (requests.exceptions.ConnectTimeout("slow"), RequestTimeoutError),
        (requests.exceptions.ReadTimeout("slow"), RequestTimeoutError),
        (requests.exceptions.ConnectionError("refused"), ConnectionFailedError),
        (requests.exceptions.TooManyRedirects("loop"), TransportError),
    ],
)
def test_send_maps_request_exceptions(raised, expected, transport):
    with patch("requests.Session.send", side_effect=raised):
        with pytest.raises(expected) as excinfo:
            transport.send(_prepared())

    assert excinfo.value.__cause__ is raised


@patch("requests.Session.send")
def test_idle_connections_are_dropped_after_timeout(mock_send):
    transport = SessionTransport(HttpClientConfig(idle_timeout_seconds=30.0))
    mock_send.return_value = _mock_response()
    adapter = transport._session.get_adapter("http://example.com")

    with patch.object(adapter, "close") as mock_close, patch(
        "courier.networking.transport.monotonic",
        side_effect=[100.0, 110.0, 200.0],
    ):
        transport.send(_prepared())
        transport.send(_prepared())
        mock_close.assert_not_called()
        transport.send(_prepared())

    assert mock_close.called


def test_close_closes_session(transport):
    with patch.object(transport._session, "close") as mock_close:
        transport.close()

    mock_close.assert_called_once_with()


@patch("requests.Session.send")
def test_envelope_does_not_hold_the_sent_request(mock_send, transport):
    mock_send.return_value = _mock_response(content=b"hello")

    response = transport.send(_prepared())

    assert not hasattr(response, "request")
    assert set(vars(response)) == {
        "status_code",
        "reason",
        "headers",
        "body",
        "url",
        "http_version",
        "elapsed_seconds",
    }
