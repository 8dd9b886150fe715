import asyncio
import threading
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar

import httpx

T = TypeVar("T")

# Network-level failures only; HTTP status errors are the provider's answer and are not retried.
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (
    TimeoutError,
    ConnectionError,
    asyncio.TimeoutError,
    httpx.TransportError,
)


class CircuitOpenError(RuntimeError):
    def __init__(self, name: str):
        super().__init__(f"circuit '{name}' is open")
        self.name = name


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


async def retry_with_backoff(
    async_func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay_seconds: float = 0.5,
    retryable_errors: tuple[type[Exception], ...] = TRANSIENT_ERRORS,
) -> T:
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")
    attempt = 0
    while True:
        try:
            return await async_func()
        except retryable_errors:  # type: ignore[misc]
            attempt += 1
            if attempt >= max_retries:
                raise
            await asyncio.sleep(base_delay_seconds * 2 ** (attempt - 1))


class CircuitBreaker:
    """Trips after `failure_threshold` consecutive failures of one outbound dependency.

    Once `recovery_timeout_seconds` have passed the breaker goes half-open and lets
    a single probe through; the probe's outcome closes or re-opens it.
    """

    def __init__(self, name: str, failure_threshold: int = 4, recovery_timeout_seconds: float = 30.0):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout_seconds = recovery_timeout_seconds
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self._opened_at = 0.0
        self._probing = False
        self._guard = threading.Lock()

    def _cooled_down(self) -> bool:
        return time.monotonic() - self._opened_at >= self.recovery_timeout_seconds

    def can_execute(self) -> bool:
        with self._guard:
            if self.state is CircuitState.OPEN and self._cooled_down():
                self.state = CircuitState.HALF_OPEN
                self._probing = False
            if self.state is CircuitState.CLOSED:
                return True
            if self.state is CircuitState.HALF_OPEN and not self._probing:
                self._probing = True
                return True
            return False

    def record_success(self) -> None:
        with self._guard:
            self.state = CircuitState.CLOSED
            self.failure_count = 0
            self._probing = False

    def record_failure(self) -> None:
        with self._guard:
            self.failure_count += 1
            self._probing = False
            tripped = self.failure_count >= self.failure_threshold
            if tripped or self.state is CircuitState.HALF_OPEN:
                self.state = CircuitState.OPEN
                self._opened_at = time.monotonic()

    def status(self) -> dict:
        with self._guard:
            snapshot = {"state": self.state.value, "failure_count": self.failure_count}
            if self.state is CircuitState.OPEN:
                remaining = self.recovery_timeout_seconds - (time.monotonic() - self._opened_at)
                snapshot["retry_in_seconds"] = round(max(remaining, 0.0), 1)
            return snapshot


class BreakerRegistry:
    """Process-wide breakers keyed by dependency name, e.g. `images:bing`."""

    def __init__(self):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._guard = threading.Lock()

    def get(self, name: str) -> CircuitBreaker:
        with self._guard:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = self._breakers[name] = CircuitBreaker(name)
            return breaker

    def status(self) -> dict[str, dict]:
        with self._guard:
            breakers = list(self._breakers.values())
        return {breaker.name: breaker.status() for breaker in breakers}

    def clear(self) -> None:
        with self._guard:
            self._breakers.clear()


breakers = BreakerRegistry()


def get_breaker(name: str) -> CircuitBreaker:
    return breakers.get(name)


def get_breakers_status() -> dict[str, dict]:
    return breakers.status()


def reset_breakers() -> None:
    breakers.clear()


async def guarded_call(breaker_name: str, async_func: Callable[[], Awaitable[T]], **retry_kwargs) -> T:
    """Run an outbound call behind the named breaker, retrying transient failures."""
    breaker = breakers.get(breaker_name)
    if not breaker.can_execute():
        raise CircuitOpenError(breaker_name)
    try:
        result = await retry_with_backoff(async_func, **retry_kwargs)
    except Exception:
        breaker.record_failure()
        raise
    breaker.record_success()
    return result
