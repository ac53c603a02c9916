"""Request and response middleware chains.

A request middleware receives the prepared request and may mutate it; a
response middleware receives the response envelope. Either signals a fault
by raising.
"""

from __future__ import annotations

import io
from typing import Callable, Mapping, Sequence

import requests

from .errors import (
    RequestMiddlewareError,
    ResponseMiddlewareError,
    ResponseReadError,
)
from .response import ResponseEnvelope

RequestMiddleware = Callable[[requests.PreparedRequest], None]
ResponseMiddleware = Callable[[ResponseEnvelope], None]


def apply_request_middleware(
    request: requests.PreparedRequest, middleware: Sequence[RequestMiddleware]
) -> None:
    """Run every step in order; the first failure aborts the chain."""
    for step in middleware:
        try:
            step(request)
        except Exception as exc:
            raise RequestMiddlewareError(f"middleware error: {exc}") from exc


def apply_response_middleware(
    response: ResponseEnvelope, middleware: Sequence[ResponseMiddleware]
) -> None:
    """Run every step in order, each against a fresh view of the body.

    The body is read into memory once, so this is not meant for unbounded
    responses. On return, or when a step fails, ``response.body`` is a fresh
    reader over the same bytes.
    """
    try:
        body = response.read()
    except Exception as exc:
        response.close()
        raise ResponseReadError(
            f"failed to read response body for middleware: {exc}"
        ) from exc
    response.close()

    for step in middleware:
        response.body = io.BytesIO(body)
        try:
            step(response)
        except Exception as exc:
            response.body = io.BytesIO(body)
            raise ResponseMiddlewareError(
                f"response middleware error: {exc}", body
            ) from exc
    response.body = io.BytesIO(body)


def auth_middleware(scheme: str, value: str) -> RequestMiddleware:
    """Set credentials for ``Bearer``, ``APIKey`` or ``Basic`` auth.

    ``Basic`` expects ``value`` to be base64 encoded already. Any other
    scheme fails when the middleware runs.
    """

    def apply(request: requests.PreparedRequest) -> None:
        if scheme == "Bearer":
            request.headers["Authorization"] = f"Bearer {value}"
        elif scheme == "APIKey":
            request.headers["X-API-Key"] = value
        elif scheme == "Basic":
            request.headers["Authorization"] = f"Basic {value}"
        else:
            raise ValueError(f"unsupported auth type: {scheme}")

    return apply


def header_middleware(headers: Mapping[str, str]) -> RequestMiddleware:
    """Set the given headers on every request."""
    frozen = dict(headers)

    def apply(request: requests.PreparedRequest) -> None:
        request.headers.update(frozen)

    return apply
