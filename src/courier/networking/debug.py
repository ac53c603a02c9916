"""curl-style request/response tracing middleware.

Example::

    client = HttpClient(
        config,
        middleware=[debug_middleware()],
        response_middleware=[debug_response_middleware()],
    )

The response middleware reads the whole body. For large responses set
``show_body=False``.
"""

from __future__ import annotations

import io
import sys
from dataclasses import dataclass
from typing import Mapping, TextIO
from urllib.parse import urlsplit

import requests

from .middleware import RequestMiddleware, ResponseMiddleware
from .response import ResponseEnvelope

RESET = "\033[0m"
PURPLE = "\033[35m"
BLUE = "\033[34m"


def purple(text: str) -> str:
    return PURPLE + text + RESET


def blue(text: str) -> str:
    return BLUE + text + RESET


@dataclass(frozen=True)
class DebugOptions:
    """Debug output settings; ``writer`` defaults to stdout at write time."""

    color: bool = True
    writer: TextIO | None = None
    show_body: bool = True

    def resolve_writer(self) -> TextIO:
        return self.writer if self.writer is not None else sys.stdout


def _request_target(url: str | None) -> str:
    parts = urlsplit(url or "")
    target = parts.path or "/"
    if parts.query:
        target += "?" + parts.query
    return target


def format_headers(
    prefix: str, headers: Mapping[str, str], *, color: bool
) -> list[str]:
    lines = []
    for name, value in headers.items():
        if color:
            name, value = purple(name), blue(value)
        lines.append(f"{prefix} {name}: {value}")
    lines.append(prefix)
    return lines


def _write_body(writer: TextIO, body: bytes | str | None) -> None:
    if not body:
        return
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    writer.write(body + "\n\n")


def debug_middleware(options: DebugOptions | None = None) -> RequestMiddleware:
    """Trace outgoing requests: request line, headers and optional body."""
    opts = options if options is not None else DebugOptions()

    def trace(request: requests.PreparedRequest) -> None:
        writer = opts.resolve_writer()
        lines = [f"> {request.method} {_request_target(request.url)} HTTP/1.1"]
        lines += format_headers(">", request.headers, color=opts.color)
        writer.write("\n".join(lines) + "\n")
        if opts.show_body:
            _write_body(writer, request.body)

    return trace


def debug_response_middleware(
    options: DebugOptions | None = None,
) -> ResponseMiddleware:
    """Trace responses: status line, headers and optional body.

    The body is re-installed after reading so later consumers see it whole.
    """
    opts = options if options is not None else DebugOptions()

    def trace(response: ResponseEnvelope) -> None:
        writer = opts.resolve_writer()
        lines = [f"< {response.http_version} {response.status}"]
        lines += format_headers("<", response.headers, color=opts.color)
        writer.write("\n".join(lines) + "\n")
        if opts.show_body and response.body is not None:
            body = response.read()
            response.close()
            response.body = io.BytesIO(body)
            _write_body(writer, body)

    return trace
