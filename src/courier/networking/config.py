"""Configuration models for the HttpClient and its retry policy."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Mapping

if TYPE_CHECKING:
    from .response import ResponseEnvelope

DEFAULT_MAX_IDLE_CONNECTIONS = 100
DEFAULT_MAX_IDLE_CONNECTIONS_PER_HOST = 100
DEFAULT_IDLE_TIMEOUT_SECONDS = 90.0

DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_WAIT_SECONDS = 0.2
DEFAULT_RETRY_MAX_WAIT_SECONDS = 10.0

RetryPredicate = Callable[["ResponseEnvelope | None", "Exception | None"], bool]


def _default_headers() -> Mapping[str, str]:
    """Return immutable empty default headers mapping."""

    return MappingProxyType({})


@dataclass(frozen=True)
class HttpClientConfig:
    """Configuration for HttpClient behavior.

    Pool settings left at zero are filled in by ``with_defaults`` when the
    transport is built.
    """

    base_url: str = ""
    user_agent: str | None = None
    default_headers: Mapping[str, str] = field(default_factory=_default_headers)
    verify_tls: bool = True
    connect_timeout_seconds: float | None = None
    read_timeout_seconds: float | None = None
    timeout_seconds: float | None = 30.0
    max_idle_connections: int = 0
    max_idle_connections_per_host: int = 0
    idle_timeout_seconds: float = 0.0

    def __post_init__(self) -> None:
        has_connect_timeout = self.connect_timeout_seconds is not None
        has_read_timeout = self.read_timeout_seconds is not None
        if has_connect_timeout != has_read_timeout:
            raise ValueError(
                "connect_timeout_seconds and read_timeout_seconds "
                "must be set together"
            )
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0 when provided")
        if (
            self.connect_timeout_seconds is not None
            and self.connect_timeout_seconds <= 0
        ):
            raise ValueError(
                "connect_timeout_seconds must be > 0 when provided"
            )
        if (
            self.read_timeout_seconds is not None
            and self.read_timeout_seconds <= 0
        ):
            raise ValueError("read_timeout_seconds must be > 0 when provided")
        if self.max_idle_connections < 0:
            raise ValueError("max_idle_connections must be >= 0")
        if self.max_idle_connections_per_host < 0:
            raise ValueError("max_idle_connections_per_host must be >= 0")
        if self.idle_timeout_seconds < 0:
            raise ValueError("idle_timeout_seconds must be >= 0")

        # Freeze copied headers to avoid post-init mutation side effects.
        object.__setattr__(
            self,
            "default_headers",
            MappingProxyType(dict(self.default_headers)),
        )

    def with_defaults(self) -> HttpClientConfig:
        """Return a copy with unset pool settings replaced by defaults."""
        return replace(
            self,
            max_idle_connections=(
                self.max_idle_connections or DEFAULT_MAX_IDLE_CONNECTIONS
            ),
            max_idle_connections_per_host=(
                self.max_idle_connections_per_host
                or DEFAULT_MAX_IDLE_CONNECTIONS_PER_HOST
            ),
            idle_timeout_seconds=(
                self.idle_timeout_seconds or DEFAULT_IDLE_TIMEOUT_SECONDS
            ),
        )

    def resolve_timeout(self) -> float | tuple[float, float] | None:
        """Return the timeout passed to every send."""
        if (
            self.connect_timeout_seconds is not None
            and self.read_timeout_seconds is not None
        ):
            return (self.connect_timeout_seconds, self.read_timeout_seconds)
        return self.timeout_seconds


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with capped, jittered exponential backoff.

    Zero values mean "unset"; ``with_defaults`` fills them in.
    """

    max_attempts: int = 0
    base_wait_seconds: float = 0.0
    max_wait_seconds: float = 0.0
    should_retry: RetryPredicate | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.base_wait_seconds < 0:
            raise ValueError("base_wait_seconds must be >= 0")
        if self.max_wait_seconds < 0:
            raise ValueError("max_wait_seconds must be >= 0")

    def with_defaults(self) -> RetryPolicy:
        return replace(
            self,
            max_attempts=self.max_attempts or DEFAULT_RETRY_ATTEMPTS,
            base_wait_seconds=(
                self.base_wait_seconds or DEFAULT_RETRY_WAIT_SECONDS
            ),
            max_wait_seconds=(
                self.max_wait_seconds or DEFAULT_RETRY_MAX_WAIT_SECONDS
            ),
        )
