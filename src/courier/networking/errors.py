"""Error taxonomy for the courier networking layer.

Callers tell failure kinds apart by class:

* ``RequestBuildError``: the request could not be assembled.
* ``MiddlewareError``: a request or response middleware step failed.
* ``TransportError``: the exchange itself failed (retried per policy).
* ``RequestCancelledError``: the caller's cancel event fired.
* ``APIError``: the server answered with a non-2xx status.
* ``DecodeError``: the server answered 2xx but the body was unusable.
"""

from __future__ import annotations

from pydantic import BaseModel, ValidationError

from .response import ResponseEnvelope


class HttpClientError(Exception):
    """Base class for every error returned by the HttpClient."""


class RequestBuildError(HttpClientError):
    """Raised when a request cannot be assembled."""


class MiddlewareError(HttpClientError):
    """Raised when a middleware step fails."""


class RequestMiddlewareError(MiddlewareError):
    """A request middleware step aborted dispatch."""


class ResponseMiddlewareError(MiddlewareError):
    """A response middleware step failed after the body was buffered."""

    def __init__(self, message: str, body: bytes = b"") -> None:
        super().__init__(message)
        self.body = body


class ResponseReadError(MiddlewareError):
    """The response body could not be buffered for middleware."""


class TransportError(HttpClientError):
    """The underlying exchange failed before a response was obtained."""


class RequestTimeoutError(TransportError):
    """The exchange timed out."""


class ConnectionFailedError(TransportError):
    """The connection could not be established or was dropped."""


class RetriesExhaustedError(TransportError):
    """Every attempt allowed by the retry policy failed at transport level."""

    def __init__(self, attempts: int, last_error: TransportError) -> None:
        super().__init__(f"request failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class RetryPredicateError(HttpClientError):
    """A custom retry predicate raised instead of deciding."""


class RequestCancelledError(HttpClientError):
    """The request's cancel event fired before the work could continue."""


class DecodeError(HttpClientError):
    """A successful response body could not be decoded."""


class APIError(HttpClientError):
    """Terminal non-2xx response from the server."""

    def __init__(self, status_code: int, message: str, body: bytes = b"") -> None:
        super().__init__(status_code, message, body)
        self._status_code = status_code
        self._message = message
        self._body = body

    def __str__(self) -> str:
        return f"HTTP {self._status_code}: {self._message}"

    @property
    def status_code(self) -> int:
        return self._status_code

    @property
    def message(self) -> str:
        return self._message

    @property
    def body(self) -> bytes:
        return self._body

    @property
    def is_not_found(self) -> bool:
        return self._status_code == 404

    @property
    def is_unauthorized(self) -> bool:
        return self._status_code == 401

    @property
    def is_forbidden(self) -> bool:
        return self._status_code == 403

    @property
    def is_client_error(self) -> bool:
        return 400 <= self._status_code < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self._status_code < 600


class ErrorPayload(BaseModel):
    """Common shape of JSON error bodies."""

    error: str | None = None
    message: str | None = None
    detail: str | None = None
    code: str | None = None


def _first_non_empty(*values: str | None) -> str:
    for value in values:
        if value:
            return value
    return ""


def classify_error(response: ResponseEnvelope) -> APIError:
    """Turn a non-2xx response into an ``APIError``.

    The message is taken from ``message``, ``detail`` or ``error`` of a JSON
    body, in that order, falling back to the raw body text.
    """
    try:
        body = response.read()
    except Exception as exc:
        return APIError(
            response.status_code,
            f"failed to read error response: {exc}",
        )
    finally:
        response.close()

    try:
        payload = ErrorPayload.model_validate_json(body)
    except ValidationError:
        payload = None
    if payload is not None:
        message = _first_non_empty(payload.message, payload.detail, payload.error)
        if message:
            return APIError(response.status_code, message, body)

    return APIError(
        response.status_code,
        body.decode("utf-8", errors="replace"),
        body,
    )
