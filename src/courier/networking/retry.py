"""Retry engine with capped exponential backoff and jitter."""

from __future__ import annotations

import logging
import random
import threading
from typing import Callable

from .config import RetryPolicy
from .errors import (
    RequestCancelledError,
    RetriesExhaustedError,
    RetryPredicateError,
    TransportError,
)
from .response import ResponseEnvelope

logger = logging.getLogger(__name__)


def calculate_backoff(
    attempt: int,
    base: float,
    cap: float,
    *,
    rand: Callable[[], float] = random.random,
) -> float:
    """Return the wait before the attempt after ``attempt`` (0-indexed).

    The capped value ``min(cap, base * 2**attempt)`` is jittered over its
    upper half, so the result lies in ``[backoff / 2, backoff)``.
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    try:
        backoff = min(cap, base * 2**attempt)
    except OverflowError:
        backoff = cap
    half = backoff / 2
    if half <= 0:
        return 0.0
    return half + rand() * half


def default_should_retry(
    response: ResponseEnvelope | None, error: Exception | None
) -> bool:
    """Retry transport faults, 5xx and 429; never 2xx or other 4xx."""
    if error is not None:
        return True
    if response is None:
        return True
    if response.status_code >= 500:
        return True
    return response.status_code == 429


class RetryEngine:
    """Re-dispatch a send primitive under a ``RetryPolicy``."""

    def __init__(
        self,
        policy: RetryPolicy,
        *,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self._policy = policy.with_defaults()
        self._rand = rand

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def _should_retry(
        self, response: ResponseEnvelope | None, error: Exception | None
    ) -> bool:
        if self._policy.should_retry is not None:
            return self._policy.should_retry(response, error)
        return default_should_retry(response, error)

    def _wait(self, attempt: int, cancel: threading.Event) -> None:
        delay = calculate_backoff(
            attempt,
            self._policy.base_wait_seconds,
            self._policy.max_wait_seconds,
            rand=self._rand,
        )
        logger.debug("retrying after attempt %d in %.3fs", attempt + 1, delay)
        if cancel.wait(delay):
            raise RequestCancelledError(
                f"request cancelled while waiting to retry attempt {attempt + 2}"
            )

    def attempt(
        self,
        send: Callable[[], ResponseEnvelope],
        cancel: threading.Event | None = None,
    ) -> ResponseEnvelope:
        """Call ``send`` until it succeeds or the policy gives up.

        A ``TransportError`` raised by ``send`` counts as a failed attempt.
        When every attempt failed at transport level the last error is
        wrapped in ``RetriesExhaustedError``; when the last attempt produced
        a response, that response is returned unchanged.
        """
        if cancel is None:
            cancel = threading.Event()
        max_attempts = self._policy.max_attempts
        response: ResponseEnvelope | None = None
        error: TransportError | None = None

        for attempt in range(max_attempts):
            response, error = None, None
            try:
                response = send()
            except TransportError as exc:
                error = exc

            try:
                retry = self._should_retry(response, error)
            except Exception as exc:
                if response is not None:
                    response.close()
                raise RetryPredicateError(
                    f"retry predicate failed: {exc}"
                ) from exc

            if not retry:
                if error is not None:
                    raise error
                assert response is not None
                return response

            if attempt == max_attempts - 1:
                break
            if response is not None:
                response.close()
            self._wait(attempt, cancel)

        if error is not None:
            logger.warning(
                "giving up after %d attempts: %s", max_attempts, error
            )
            raise RetriesExhaustedError(max_attempts, error) from error
        logger.warning(
            "giving up after %d attempts with status %s",
            max_attempts,
            response.status_code if response is not None else None,
        )
        assert response is not None
        return response
