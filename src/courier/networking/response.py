"""Response envelope handed through the execution pipeline."""

from __future__ import annotations

from typing import IO, Any, Mapping

import requests
from requests.structures import CaseInsensitiveDict

_HTTP_VERSIONS = {10: "HTTP/1.0", 11: "HTTP/1.1", 20: "HTTP/2.0"}


class _StreamedBody:
    """Single-use reader over a streamed ``requests`` response."""

    def __init__(self, response: requests.Response) -> None:
        self._response = response

    def read(self, size: int = -1) -> bytes:
        amount = None if size is None or size < 0 else size
        return self._response.raw.read(amount, decode_content=True)

    def close(self) -> None:
        # Returns the connection to the pool once the body was drained.
        self._response.close()


class ResponseEnvelope:
    """Status, headers and a (possibly re-buffered) body.

    ``body`` is any binary file-like object exposing ``read`` and ``close``,
    or ``None`` when the exchange carried no body. Consumers that drain it
    and are not the last consumer must install a fresh readable view.
    """

    def __init__(
        self,
        status_code: int,
        *,
        reason: str = "",
        headers: Mapping[str, str] | None = None,
        body: IO[bytes] | Any | None = None,
        url: str = "",
        http_version: str = "HTTP/1.1",
        elapsed_seconds: float | None = None,
    ) -> None:
        self.status_code = status_code
        self.reason = reason
        self.headers = CaseInsensitiveDict(headers or {})
        self.body = body
        self.url = url
        self.http_version = http_version
        self.elapsed_seconds = elapsed_seconds

    @classmethod
    def from_requests(cls, response: requests.Response) -> ResponseEnvelope:
        """Wrap a response obtained with ``stream=True``."""
        version = getattr(response.raw, "version", 11)
        try:
            elapsed = response.elapsed.total_seconds()
        except AttributeError:
            elapsed = None
        return cls(
            response.status_code,
            reason=response.reason or "",
            headers=response.headers,
            body=_StreamedBody(response),
            url=response.url,
            http_version=_HTTP_VERSIONS.get(version, "HTTP/1.1"),
            elapsed_seconds=elapsed,
        )

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def status(self) -> str:
        """Status line fragment, e.g. ``"200 OK"``."""
        if self.reason:
            return f"{self.status_code} {self.reason}"
        return str(self.status_code)

    def read(self) -> bytes:
        """Drain the current body; an absent body reads as empty."""
        if self.body is None:
            return b""
        return self.body.read()

    def close(self) -> None:
        if self.body is not None:
            self.body.close()

    def __repr__(self) -> str:
        return f"<ResponseEnvelope [{self.status_code}] {self.url}>"
