"""Transport abstraction and the pooled ``requests`` implementation."""

from __future__ import annotations

import logging
import threading
from time import monotonic
from typing import Protocol, runtime_checkable

import requests
from requests.adapters import HTTPAdapter

from .config import HttpClientConfig
from .errors import ConnectionFailedError, RequestTimeoutError, TransportError
from .response import ResponseEnvelope

logger = logging.getLogger(__name__)


@runtime_checkable
class Transport(Protocol):
    """Sends one prepared request.

    Implementations must be safe for concurrent use and raise
    ``TransportError`` when no response could be obtained.
    """

    def send(self, request: requests.PreparedRequest) -> ResponseEnvelope:
        ...


class SessionTransport:
    """Transport backed by a pooled ``requests.Session``."""

    def __init__(self, config: HttpClientConfig) -> None:
        self._config = config.with_defaults()
        self._timeout = self._config.resolve_timeout()
        self._session = requests.Session()
        adapter = HTTPAdapter(
            pool_connections=self._config.max_idle_connections,
            pool_maxsize=self._config.max_idle_connections_per_host,
        )
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)
        self._lock = threading.Lock()
        self._last_used: float | None = None

    @property
    def config(self) -> HttpClientConfig:
        return self._config

    def _expire_idle_connections(self) -> None:
        """Drop pooled connections when the transport sat idle too long."""
        now = monotonic()
        with self._lock:
            last_used, self._last_used = self._last_used, now
        if last_used is None:
            return
        idle = now - last_used
        if idle > self._config.idle_timeout_seconds:
            logger.debug("dropping pooled connections idle for %.1fs", idle)
            for adapter in self._session.adapters.values():
                adapter.close()

    def send(self, request: requests.PreparedRequest) -> ResponseEnvelope:
        self._expire_idle_connections()
        logger.debug("sending %s %s", request.method, request.url)
        try:
            response = self._session.send(
                request,
                stream=True,
                timeout=self._timeout,
                verify=self._config.verify_tls,
                allow_redirects=True,
            )
        except requests.exceptions.Timeout as exc:
            raise RequestTimeoutError(str(exc)) from exc
        except requests.exceptions.ConnectionError as exc:
            raise ConnectionFailedError(str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            raise TransportError(str(exc)) from exc
        return ResponseEnvelope.from_requests(response)

    def close(self) -> None:
        self._session.close()
