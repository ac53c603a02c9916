# pyright: reportUnknownParameterType=false, reportUnknownMemberType=false
import io
import json

import pytest
import requests

from courier.networking.errors import (
    RequestMiddlewareError,
    ResponseMiddlewareError,
    ResponseReadError,
)
from courier.networking.middleware import (
    apply_request_middleware,
    apply_response_middleware,
    auth_middleware,
    header_middleware,
)
from courier.networking.response import ResponseEnvelope


class _BrokenBody:
    closed = False

    def read(self, size=-1):
        raise OSError("connection reset")

    def close(self):
        self.closed = True


def _prepared() -> requests.PreparedRequest:
    return requests.Request("GET", "http://example.com/items").prepare()


def test_request_middleware_runs_in_registration_order():
    order = []
    request = _prepared()

    apply_request_middleware(
        request,
        [
            lambda r: order.append("first"),
            lambda r: order.append("second"),
        ],
    )

    assert order == ["first", "second"]


def test_request_middleware_failure_stops_the_chain():
    order = []

    def boom(request):
        raise RuntimeError("nope")

    with pytest.raises(RequestMiddlewareError) as excinfo:
        apply_request_middleware(
            _prepared(),
            [lambda r: order.append("first"), boom, lambda r: order.append("third")],
        )

    assert order == ["first"]
    assert isinstance(excinfo.value.__cause__, RuntimeError)


@pytest.mark.parametrize(
    ("scheme", "header", "expected"),
    [
        ("Bearer", "Authorization", "Bearer token"),
        ("APIKey", "X-API-Key", "token"),
        ("Basic", "Authorization", "Basic token"),
    ],
)
def test_auth_middleware_sets_header(scheme, header, expected):
    request = _prepared()

    auth_middleware(scheme, "token")(request)

    assert request.headers[header] == expected


def test_auth_middleware_rejects_unknown_scheme_when_run():
    step = auth_middleware("Digest", "token")

    with pytest.raises(RequestMiddlewareError) as excinfo:
        apply_request_middleware(_prepared(), [step])

    assert "unsupported auth type: Digest" in str(excinfo.value)


def test_header_middleware_sets_every_header():
    headers = {"X-One": "1", "X-Two": "2"}
    step = header_middleware(headers)
    headers["X-One"] = "changed"
    request = _prepared()

    step(request)

    assert request.headers["X-One"] == "1"
    assert request.headers["X-Two"] == "2"


def test_response_middleware_sees_fresh_body_each_time():
    payload = {"id": "123"}
    response = ResponseEnvelope(200, body=io.BytesIO(json.dumps(payload).encode()))
    observed = []

    def reader(envelope):
        observed.append(envelope.read())

    apply_response_middleware(response, [reader, reader])

    assert observed[0] == observed[1]
    assert json.loads(response.read()) == payload


def test_response_middleware_can_run_twice_on_same_envelope():
    response = ResponseEnvelope(200, body=io.BytesIO(b'{"id":"123"}'))
    observed = []

    def reader(envelope):
        observed.append(envelope.read())

    apply_response_middleware(response, [reader])
    apply_response_middleware(response, [reader])

    assert observed == [b'{"id":"123"}', b'{"id":"123"}']
    assert response.read() == b'{"id":"123"}'


def test_response_middleware_failure_restores_body():
    response = ResponseEnvelope(500, body=io.BytesIO(b"server error"))
    calls = []

    def drain_and_fail(envelope):
        envelope.read()
        raise ValueError("inspection failed")

    with pytest.raises(ResponseMiddlewareError) as excinfo:
        apply_response_middleware(
            response, [drain_and_fail, lambda e: calls.append("never")]
        )

    assert calls == []
    assert excinfo.value.body == b"server error"
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert response.read() == b"server error"


def test_response_middleware_read_failure_closes_response():
    body = _BrokenBody()
    response = ResponseEnvelope(200, body=body)

    with pytest.raises(ResponseReadError):
        apply_response_middleware(response, [lambda e: None])

    assert body.closed is True


def test_response_middleware_handles_absent_body():
    response = ResponseEnvelope(204)
    observed = []

    apply_response_middleware(response, [lambda e: observed.append(e.read())])

    assert observed == [b""]
    assert response.read() == b""
