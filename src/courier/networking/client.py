"""Synchronous HTTP client for the courier networking layer.

The client assembles requests through ``RequestBuilder`` and executes them
through a fixed pipeline: request middleware, dispatch (with retries when a
policy is configured), response middleware, then error classification or
decoding. Every outcome is returned as a Result carrying request metadata.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Sequence

import requests
from pydantic import TypeAdapter, ValidationError

from .config import HttpClientConfig, RetryPolicy
from .errors import (
    DecodeError,
    HttpClientError,
    RequestBuildError,
    RequestCancelledError,
    classify_error,
)
from .middleware import (
    RequestMiddleware,
    ResponseMiddleware,
    apply_request_middleware,
    apply_response_middleware,
)
from .request import RequestBuilder, RequestDescriptor, encode_query, join_url
from .response import ResponseEnvelope
from .retry import RetryEngine
from .transport import SessionTransport, Transport
from .types import Err, Ok, Result

logger = logging.getLogger(__name__)


@lru_cache(maxsize=128)
def _type_adapter(into: Any) -> TypeAdapter[Any]:
    return TypeAdapter(into)


class HttpClient:
    """Core HTTP client (sync).

    Base URL, middleware and retry policy are fixed at construction and
    shared read-only by every request, so one client may be used from
    several threads as long as its transport allows it.
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        *,
        transport: Transport | None = None,
        retry: RetryPolicy | None = None,
        middleware: Sequence[RequestMiddleware] = (),
        response_middleware: Sequence[ResponseMiddleware] = (),
    ) -> None:
        """Create a new HttpClient.

        Args:
            config: Base URL, default headers, timeouts and pool settings.
            transport: Replaces the pooled ``requests`` transport.
            retry: Enables retries; unset fields take default values.
            middleware: Steps run against each prepared request, in order.
            response_middleware: Steps run against each response, in order.
        """
        self._config = config if config is not None else HttpClientConfig()
        self._transport = (
            transport if transport is not None else SessionTransport(self._config)
        )
        self._retry = RetryEngine(retry) if retry is not None else None
        self._middleware = tuple(middleware)
        self._response_middleware = tuple(response_middleware)
        self._default_headers: dict[str, str] = {}
        if self._config.user_agent:
            self._default_headers["User-Agent"] = self._config.user_agent
        self._default_headers.update(self._config.default_headers)

    @property
    def base_url(self) -> str:
        return self._config.base_url

    def __enter__(self) -> HttpClient:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release the transport's pooled connections."""
        close = getattr(self._transport, "close", None)
        if close is not None:
            close()

    def new_request(self) -> RequestBuilder:
        return RequestBuilder(self)

    def get(self, path: str) -> RequestBuilder:
        return self.new_request().get(path)

    def post(self, path: str) -> RequestBuilder:
        return self.new_request().post(path)

    def put(self, path: str) -> RequestBuilder:
        return self.new_request().put(path)

    def delete(self, path: str) -> RequestBuilder:
        return self.new_request().delete(path)

    def patch(self, path: str) -> RequestBuilder:
        return self.new_request().patch(path)

    def _build_url(self, descriptor: RequestDescriptor) -> str:
        url = join_url(self._config.base_url, descriptor.path)
        if descriptor.query:
            url += "?" + encode_query(descriptor.query)
        return url

    def _prepare(
        self, descriptor: RequestDescriptor, url: str
    ) -> requests.PreparedRequest:
        headers = dict(self._default_headers)
        headers.update(descriptor.headers)
        try:
            return requests.Request(
                method=descriptor.method.value,
                url=url,
                headers=headers,
                data=descriptor.body,
            ).prepare()
        except requests.exceptions.RequestException as exc:
            raise RequestBuildError(f"failed to create request: {exc}") from exc

    def _build_meta(
        self,
        method: str,
        request_url: str,
        response: ResponseEnvelope | None,
        attempts: int,
        final_error: str | None = None,
    ) -> dict[str, Any]:
        """Construct metadata dictionary from the request and response."""
        meta: dict[str, Any] = {}
        meta["method"] = method
        meta["url"] = request_url
        meta["attempts"] = attempts
        if response is not None:
            meta["status"] = response.status_code
            meta["status_code"] = response.status_code
            meta["reason"] = response.reason
            if response.elapsed_seconds is not None:
                meta["elapsed_s"] = response.elapsed_seconds
        if final_error is not None:
            meta["final_error"] = final_error
        return meta

    @staticmethod
    def _decode(response: ResponseEnvelope, into: Any) -> Any:
        try:
            body = response.read()
        except Exception as exc:
            raise DecodeError(f"failed to decode response: {exc}") from exc
        finally:
            response.close()
        try:
            return _type_adapter(into).validate_json(body)
        except ValidationError as exc:
            raise DecodeError(f"failed to decode response: {exc}") from exc

    def _execute(
        self,
        descriptor: RequestDescriptor,
        *,
        into: Any = None,
        classify: bool = True,
    ) -> Result[Any, Exception]:
        """Run one request through the pipeline and normalize the outcome."""
        method = descriptor.method.value
        url = self._build_url(descriptor)
        attempts = 0
        response: ResponseEnvelope | None = None
        handed_over = False

        def send(request: requests.PreparedRequest) -> ResponseEnvelope:
            nonlocal attempts
            if descriptor.cancel.is_set():
                raise RequestCancelledError(
                    f"request cancelled before attempt {attempts + 1}"
                )
            attempts += 1
            return self._transport.send(request)

        try:
            request = self._prepare(descriptor, url)
            apply_request_middleware(request, self._middleware)

            if self._retry is not None:
                response = self._retry.attempt(
                    lambda: send(request), descriptor.cancel
                )
            else:
                response = send(request)

            if self._response_middleware:
                apply_response_middleware(response, self._response_middleware)

            meta = self._build_meta(method, url, response, attempts)
            if not classify:
                handed_over = True
                return Ok(response, meta=meta)
            if not response.is_success:
                error = classify_error(response)
                meta["final_error"] = type(error).__name__
                return Err(error, meta=meta)
            if into is None:
                handed_over = True
                return Ok(response, meta=meta)
            return Ok(self._decode(response, into), meta=meta)
        except HttpClientError as exc:
            logger.debug("%s %s failed: %s", method, url, exc)
            return Err(
                exc,
                meta=self._build_meta(
                    method,
                    url,
                    response,
                    attempts,
                    final_error=type(exc).__name__,
                ),
            )
        finally:
            if response is not None and not handed_over:
                response.close()
