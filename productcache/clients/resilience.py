"""Resilience primitives for backing-store calls: exceptions, retry, circuit breaker, envelope validation."""

import logging
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any, TypeVar

from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")


# ── Exception Hierarchy ──────────────────────────────────────────────────────


class BackingStoreError(Exception):
    """Base class for all backing-store errors."""


class TransientBackingStoreError(BackingStoreError):
    """Retriable errors (429, 5xx, connection failures)."""


class PermanentBackingStoreError(BackingStoreError):
    """Non-retriable errors (400, 403, 409, etc.)."""


class AuthError(PermanentBackingStoreError):
    """Authentication/authorisation failure (401)."""


class SchemaChangeError(PermanentBackingStoreError):
    """Backing-store response shape changed unexpectedly."""


class CircuitOpenError(BackingStoreError):
    """Circuit breaker is open; calls are being shed."""


TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


# ── Response Classification ──────────────────────────────────────────────────


def _error_detail(response: object) -> str:
    try:
        body = response.json()  # type: ignore[attr-defined]
    except Exception:  # noqa: BLE001
        return ""
    if isinstance(body, dict) and body.get("message"):
        return f": {body['message']}"
    return ""


def classify_response(response: object) -> None:
    """Raise an appropriate error based on HTTP status code.

    Args:
        response: An object with a ``status_code`` attribute (e.g. httpx.Response).

    Raises:
        AuthError: On 401.
        PermanentBackingStoreError: On other 4xx.
        TransientBackingStoreError: On 429, 5xx.
    """
    status = getattr(response, "status_code", None)
    if status is None or 200 <= status < 400:
        return

    detail = _error_detail(response)
    if status == 401:
        raise AuthError(f"Authentication failed (HTTP {status}){detail}")
    if status in TRANSIENT_STATUS_CODES:
        raise TransientBackingStoreError(f"Transient error (HTTP {status}){detail}")
    if 400 <= status < 500:
        raise PermanentBackingStoreError(f"Client error (HTTP {status}){detail}")
    raise TransientBackingStoreError(f"Server error (HTTP {status}){detail}")


# ── Retry ─────────────────────────────────────────────────────────────────


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` callback that logs each retry."""
    attempt = retry_state.attempt_number
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("Retry attempt %d after error: %s", attempt, exc)


resilient_request = retry(
    retry=retry_if_exception_type(TransientBackingStoreError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    before_sleep=log_retry_attempt,
    reraise=True,
)
"""Tenacity decorator for retrying on ``TransientBackingStoreError``."""


# ── Circuit Breaker ──────────────────────────────────────────────────────────


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Lightweight async circuit breaker (no external dependency).

    Args:
        name: Human-readable name for logging.
        fail_max: Consecutive failures before opening.
        reset_timeout: Seconds to wait before trying again (half-open).
    """

    def __init__(
        self, name: str, fail_max: int = 5, reset_timeout: float = 60.0
    ) -> None:
        self.name = name
        self.fail_max = fail_max
        self.reset_timeout = reset_timeout

        self._state = CircuitState.CLOSED
        self._fail_count = 0
        self._last_failure_time: float = 0.0

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time >= self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._fail_count = 0
        self._last_failure_time = 0.0

    async def call_async(
        self, func: Callable[..., Awaitable[R]], *args: Any, **kwargs: Any
    ) -> R:
        """Await ``func(*args, **kwargs)``, applying circuit-breaker logic.

        The coroutine is only created once the breaker admits the call.

        Raises:
            CircuitOpenError: If the circuit is OPEN.
        """
        current = self.state
        if current == CircuitState.OPEN:
            raise CircuitOpenError(f"Circuit '{self.name}' is open")

        try:
            result = await func(*args, **kwargs)
        except Exception:
            self._fail_count += 1
            self._last_failure_time = time.monotonic()
            if self._fail_count >= self.fail_max:
                self._state = CircuitState.OPEN
                logger.warning("Circuit '%s' opened after %d failures", self.name, self._fail_count)
            elif current == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning("Circuit '%s' re-opened on half-open failure", self.name)
            raise

        # Success resets the breaker
        self._fail_count = 0
        self._state = CircuitState.CLOSED
        return result


backing_store_breaker = CircuitBreaker("backing_store", fail_max=5, reset_timeout=60.0)


# ── Envelope Validation ──────────────────────────────────────────────────────


def validate_envelope(payload: object) -> dict:
    """Validate the ``{code, message, data}`` envelope the product API returns.

    Raises:
        SchemaChangeError: If the payload is not a dict or lacks ``code``.
    """
    if not isinstance(payload, dict):
        raise SchemaChangeError("Expected dict for product API response")
    missing = {"code"} - payload.keys()
    if missing:
        raise SchemaChangeError(f"Missing keys in product API response: {missing}")
    return payload


def validate_product_schema(data: object) -> dict:
    """Validate that a product payload has the keys the cache relies on.

    Raises:
        SchemaChangeError: If required keys are missing.
    """
    if not isinstance(data, dict):
        raise SchemaChangeError("Expected dict for product payload")
    required = {"id", "name"}
    missing = required - data.keys()
    if missing:
        raise SchemaChangeError(f"Missing keys in product payload: {missing}")
    return data
