"""Request descriptors and the fluent request builder."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping
from urllib.parse import urlencode

from pydantic_core import PydanticSerializationError, to_json

from .errors import RequestBuildError
from .response import ResponseEnvelope
from .types import Err, Result

if TYPE_CHECKING:
    from .client import HttpClient


class Method(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


@dataclass
class RequestDescriptor:
    """Fully specified request, prior to dispatch."""

    method: Method
    path: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, list[str]] = field(default_factory=dict)
    body: bytes | None = None
    cancel: threading.Event = field(default_factory=threading.Event)


def join_url(base: str, path: str) -> str:
    """Join ``base`` and ``path`` with exactly one slash between them."""
    if not path:
        return base
    return base.rstrip("/") + "/" + path.lstrip("/")


def encode_query(query: Mapping[str, list[str]]) -> str:
    """Encode a query multimap, keys sorted, values kept in order."""
    return urlencode(sorted(query.items()), doseq=True)


class RequestBuilder:
    """Assemble a request field by field, then execute it.

    Errors raised while building (for example a body that cannot be JSON
    encoded) are kept and returned by ``do`` without any network activity.
    """

    def __init__(self, client: HttpClient) -> None:
        self._client = client
        self._method: Method | None = None
        self._path = ""
        self._headers: dict[str, str] = {}
        self._query: dict[str, list[str]] = {}
        self._body: bytes | None = None
        self._cancel = threading.Event()
        self._error: RequestBuildError | None = None

    def _set(self, method: Method, path: str) -> RequestBuilder:
        self._method = method
        self._path = path
        return self

    def get(self, path: str) -> RequestBuilder:
        return self._set(Method.GET, path)

    def post(self, path: str) -> RequestBuilder:
        return self._set(Method.POST, path)

    def put(self, path: str) -> RequestBuilder:
        return self._set(Method.PUT, path)

    def delete(self, path: str) -> RequestBuilder:
        return self._set(Method.DELETE, path)

    def patch(self, path: str) -> RequestBuilder:
        return self._set(Method.PATCH, path)

    def with_cancel(self, cancel: threading.Event) -> RequestBuilder:
        """Use ``cancel`` to stop retries and backoff waits once set."""
        self._cancel = cancel
        return self

    def with_json(self, value: Any) -> RequestBuilder:
        """Encode ``value`` as the JSON body and set the content type."""
        if self._error is not None:
            return self
        try:
            self._body = to_json(value)
        except PydanticSerializationError as exc:
            self._error = RequestBuildError(f"failed to marshal JSON: {exc}")
            self._error.__cause__ = exc
            return self
        self._headers["Content-Type"] = "application/json"
        return self

    def with_body(self, body: bytes) -> RequestBuilder:
        self._body = body
        return self

    def with_header(self, key: str, value: str) -> RequestBuilder:
        self._headers[key] = value
        return self

    def with_headers(self, headers: Mapping[str, str]) -> RequestBuilder:
        self._headers.update(headers)
        return self

    def with_query(self, key: str, value: str) -> RequestBuilder:
        self._query.setdefault(key, []).append(value)
        return self

    def with_query_params(self, params: Mapping[str, str]) -> RequestBuilder:
        for key, value in params.items():
            self.with_query(key, value)
        return self

    def build(self) -> RequestDescriptor:
        if self._error is not None:
            raise self._error
        if self._method is None:
            raise RequestBuildError("request method is not set")
        return RequestDescriptor(
            method=self._method,
            path=self._path,
            headers=dict(self._headers),
            query={key: list(values) for key, values in self._query.items()},
            body=self._body,
            cancel=self._cancel,
        )

    def do(self, into: Any = None) -> Result[Any, Exception]:
        """Execute the request.

        Args:
            into: Optional type the JSON body is decoded into (a dataclass,
                pydantic model, ``dict``...). Without it the successful
                response envelope is returned, body unread.

        Returns:
            Result with the decoded value or envelope, or the error.
        """
        try:
            descriptor = self.build()
        except RequestBuildError as exc:
            return Err(exc, meta={"final_error": type(exc).__name__})
        return self._client._execute(descriptor, into=into)

    def do_with_response(self) -> Result[ResponseEnvelope, Exception]:
        """Execute the request and return the envelope whatever its status."""
        try:
            descriptor = self.build()
        except RequestBuildError as exc:
            return Err(exc, meta={"final_error": type(exc).__name__})
        return self._client._execute(descriptor, classify=False)
