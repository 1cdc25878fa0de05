"""
Circuit breaker for outbound calls (provider sync, notification dispatch)

States:
- closed: calls pass through, outcomes are recorded in a rolling window
- open: calls are rejected immediately with ServiceUnavailableError
- half_open: after the reset timeout a limited number of trial calls run;
  a successful trial closes the circuit, a failed one reopens it

Every outbound error is normalized into an IntegrationError carrying a
`retryable` flag that callers use to decide whether to enqueue a retry.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from .config import (
    BREAKER_FAILURE_THRESHOLD_PERCENTAGE,
    BREAKER_HALF_OPEN_MAX_CALLS,
    BREAKER_MINIMUM_CALLS,
    BREAKER_RESET_TIMEOUT,
    BREAKER_WINDOW_SIZE,
    PROVIDER_CALL_TIMEOUT,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================================================
# INTEGRATION ERRORS
# ============================================================================


class IntegrationError(Exception):
    """Failure talking to an external provider"""

    retryable_default = True

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: Optional[int] = None,
        retryable: Optional[bool] = None,
    ):
        self.provider = provider
        self.message = message
        self.status_code = status_code
        self.retryable = self.retryable_default if retryable is None else retryable
        super().__init__(f"[{provider}] {message}")


class ServiceUnavailableError(IntegrationError):
    """Raised without any network call while the circuit is open"""

    def __init__(self, provider: str, reset_in: float = 0.0):
        self.reset_in = reset_in
        super().__init__(provider, f"Circuit is open, retry in {reset_in:.1f}s", status_code=503)


class ProviderTimeoutError(IntegrationError):
    def __init__(self, provider: str, timeout: float):
        self.timeout = timeout
        super().__init__(provider, f"Call timed out after {timeout}s")


class ExternalEventNotFoundError(IntegrationError):
    """The remote event/booking does not exist (already removed)"""

    retryable_default = False

    def __init__(self, provider: str, message: str = "Remote resource not found"):
        super().__init__(provider, message, status_code=404)


class InvalidDestinationError(IntegrationError):
    """Recipient or target is invalid; retrying cannot succeed"""

    retryable_default = False


def integration_error_from_response(provider: str, response: httpx.Response) -> IntegrationError:
    """Map a non-success HTTP response to a classified IntegrationError"""
    status = response.status_code
    detail = response.text[:200] if response.text else response.reason_phrase

    if status == 404:
        return ExternalEventNotFoundError(provider, detail or "Remote resource not found")
    if status == 429 or status >= 500:
        return IntegrationError(provider, f"HTTP {status}: {detail}", status_code=status, retryable=True)
    if status in (401, 403):
        # Credentials may be refreshed by the time the job runs again
        return IntegrationError(provider, f"HTTP {status}: {detail}", status_code=status, retryable=True)
    return IntegrationError(provider, f"HTTP {status}: {detail}", status_code=status, retryable=False)


def classify_error(provider: str, error: BaseException) -> IntegrationError:
    """Normalize any exception raised by an outbound call"""
    if isinstance(error, IntegrationError):
        return error
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ProviderTimeoutError(provider, PROVIDER_CALL_TIMEOUT)
    if isinstance(error, httpx.HTTPStatusError):
        return integration_error_from_response(provider, error.response)
    if isinstance(error, httpx.TransportError):
        return IntegrationError(provider, f"Transport error: {error}", retryable=True)
    return IntegrationError(provider, f"Unexpected error: {error}", retryable=False)


# ============================================================================
# CIRCUIT BREAKER
# ============================================================================


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    timeout: float = PROVIDER_CALL_TIMEOUT
    failure_threshold_percentage: float = BREAKER_FAILURE_THRESHOLD_PERCENTAGE
    minimum_calls: int = BREAKER_MINIMUM_CALLS
    window_size: int = BREAKER_WINDOW_SIZE
    reset_timeout: float = BREAKER_RESET_TIMEOUT
    half_open_max_calls: int = BREAKER_HALF_OPEN_MAX_CALLS


@dataclass
class CircuitStats:
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    rejects: int = 0
    last_failure_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None


class CircuitBreaker:
    """Per-provider breaker; `clock` returns monotonic seconds"""

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._state_changed_at = clock()
        self._window: deque[bool] = deque(maxlen=self.config.window_size)
        self._trial_calls = 0
        self.stats = CircuitStats()

    @property
    def state(self) -> CircuitState:
        self._check_half_open()
        return self._state

    def reset_in(self) -> float:
        if self._state != CircuitState.OPEN:
            return 0.0
        elapsed = self._clock() - self._state_changed_at
        return max(0.0, self.config.reset_timeout - elapsed)

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run `operation` through the breaker.

        Raises:
            ServiceUnavailableError: circuit open (operation not invoked)
            IntegrationError: the operation failed; the original exception is chained
        """
        self._check_half_open()

        if self._state == CircuitState.OPEN or (
            self._state == CircuitState.HALF_OPEN and self._trial_calls >= self.config.half_open_max_calls
        ):
            self.stats.rejects += 1
            reset_in = self.reset_in()
            logger.warning(f"⚠️ Circuit '{self.name}' rejecting call (retry in {reset_in:.1f}s)")
            raise ServiceUnavailableError(self.name, reset_in)

        is_trial = self._state == CircuitState.HALF_OPEN
        if is_trial:
            self._trial_calls += 1

        try:
            result = await asyncio.wait_for(operation(), timeout=self.config.timeout)
        except Exception as e:
            error = classify_error(self.name, e)
            if isinstance(error, ProviderTimeoutError):
                self.stats.timeouts += 1
            if isinstance(error, ExternalEventNotFoundError):
                # Provider is reachable, not a health failure
                self._record_success()
            else:
                self._record_failure(error)
            if error is e:
                raise
            raise error from e
        finally:
            if is_trial:
                self._trial_calls = max(0, self._trial_calls - 1)

        self._record_success()
        return result

    def force_open(self) -> None:
        self._set_state(CircuitState.OPEN)
        logger.warning(f"⚠️ Circuit '{self.name}' force opened")

    def force_close(self) -> None:
        self._set_state(CircuitState.CLOSED)
        self._reset()
        logger.info(f"✅ Circuit '{self.name}' force closed")

    def get_stats(self) -> dict:
        stats = asdict(self.stats)
        stats["state"] = self.state.value
        return stats

    # ------------------------------------------------------------------

    def _record_success(self) -> None:
        self.stats.successes += 1
        self.stats.last_success_at = datetime.now(timezone.utc)

        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.CLOSED)
            self._reset()
            logger.info(f"✅ Circuit '{self.name}' closed after successful trial call")
            return

        self._window.append(False)

    def _record_failure(self, error: IntegrationError) -> None:
        self.stats.failures += 1
        self.stats.last_failure_at = datetime.now(timezone.utc)

        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.OPEN)
            logger.warning(f"⚠️ Circuit '{self.name}' reopened after failed trial call: {error.message}")
            return

        self._window.append(True)
        if self._should_open():
            self._set_state(CircuitState.OPEN)
            logger.warning(
                f"⚠️ Circuit '{self.name}' opened: {sum(self._window)}/{len(self._window)} recent calls failed"
            )

    def _should_open(self) -> bool:
        total = len(self._window)
        if total < self.config.minimum_calls:
            return False
        failure_percentage = sum(self._window) / total * 100
        return failure_percentage >= self.config.failure_threshold_percentage

    def _check_half_open(self) -> None:
        if self._state != CircuitState.OPEN:
            return
        if self._clock() - self._state_changed_at >= self.config.reset_timeout:
            self._set_state(CircuitState.HALF_OPEN)
            logger.info(f"🔄 Circuit '{self.name}' half-open, allowing trial calls")

    def _set_state(self, state: CircuitState) -> None:
        self._state = state
        self._state_changed_at = self._clock()
        self._trial_calls = 0

    def _reset(self) -> None:
        self._window.clear()
        self.stats = CircuitStats()


class CircuitBreakerRegistry:
    """One breaker per provider name, created on first use"""

    def __init__(self, config: Optional[CircuitBreakerConfig] = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        if name not in self._breakers:
            self._breakers[name] = CircuitBreaker(name, self.config, self._clock)
        return self._breakers[name]

    def all_stats(self) -> dict[str, dict]:
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}
