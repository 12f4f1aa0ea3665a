"""
Circuit Breaker

Guards outbound calls (Bot API, document classification) so that a failing
dependency is short-circuited instead of stalling every conversation.
"""
import asyncio
import threading
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar, ParamSpec
from dataclasses import dataclass
from functools import wraps

from app.core.logging import get_logger
from app.core.exceptions import CircuitBreakerOpenError

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Thresholds for a single circuit"""
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 3


@dataclass
class _CircuitCounters:
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    successes: int = 0
    opened_at: float = 0.0
    probes: int = 0


class CircuitBreaker:
    """
    Per-service circuit breaker.

    CLOSED counts consecutive failures and opens at ``failure_threshold``.
    OPEN rejects calls until ``timeout_seconds`` elapsed, then lets a limited
    number of probe calls through (HALF_OPEN). Enough probe successes close the
    circuit again; any probe failure re-opens it.
    """

    _registry: dict[str, "CircuitBreaker"] = {}
    _registry_lock = threading.Lock()

    def __init__(
        self,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._counters = _CircuitCounters()
        # threading.Lock: Celery tasks run each call on a fresh event loop
        self._lock = threading.Lock()

    @classmethod
    def get_instance(
        cls,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ) -> "CircuitBreaker":
        """Return the process-wide breaker for ``service_name``, creating it once"""
        breaker = cls._registry.get(service_name)
        if breaker is None:
            with cls._registry_lock:
                breaker = cls._registry.get(service_name)
                if breaker is None:
                    breaker = cls(service_name, config)
                    cls._registry[service_name] = breaker
        return breaker

    @classmethod
    def reset_all(cls) -> None:
        """Forget every breaker (tests)"""
        with cls._registry_lock:
            cls._registry.clear()

    @property
    def state(self) -> CircuitState:
        return self._counters.state

    @property
    def is_closed(self) -> bool:
        return self._counters.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._counters.state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._counters.state == CircuitState.HALF_OPEN

    def _cooldown_elapsed(self) -> bool:
        return time.time() - self._counters.opened_at >= self.config.timeout_seconds

    def _move_to(self, new_state: CircuitState) -> None:
        previous = self._counters.state
        self._counters.state = new_state
        if new_state is CircuitState.HALF_OPEN:
            self._counters.probes = 0
            self._counters.successes = 0
        elif new_state is CircuitState.CLOSED:
            self._counters.failures = 0
            self._counters.successes = 0

        logger.info(
            f"Circuit breaker '{self.service_name}' changed state",
            extra_data={
                "service": self.service_name,
                "old_state": previous.value,
                "new_state": new_state.value,
            }
        )

    async def record_success(self) -> None:
        with self._lock:
            if self._counters.state is CircuitState.HALF_OPEN:
                self._counters.successes += 1
                if self._counters.successes >= self.config.success_threshold:
                    self._move_to(CircuitState.CLOSED)
            elif self._counters.state is CircuitState.CLOSED:
                self._counters.failures = 0

    async def record_failure(self, error: Exception | None = None) -> None:
        with self._lock:
            self._counters.failures += 1
            self._counters.opened_at = time.time()

            logger.warning(
                f"Circuit breaker '{self.service_name}' recorded failure",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self._counters.failures,
                    "threshold": self.config.failure_threshold,
                    "error": str(error) if error else None,
                }
            )

            if self._counters.state is CircuitState.HALF_OPEN:
                self._move_to(CircuitState.OPEN)
            elif self._counters.failures >= self.config.failure_threshold:
                self._move_to(CircuitState.OPEN)

    async def can_execute(self) -> bool:
        """Whether a call may go through right now"""
        with self._lock:
            state = self._counters.state
            if state is CircuitState.CLOSED:
                return True
            if state is CircuitState.OPEN:
                if not self._cooldown_elapsed():
                    return False
                self._move_to(CircuitState.HALF_OPEN)
                return True
            if self._counters.probes < self.config.half_open_max_calls:
                self._counters.probes += 1
                return True
            return False

    def get_retry_after(self) -> float:
        """Seconds left before the next probe is allowed"""
        if self._counters.state is not CircuitState.OPEN:
            return 0.0
        remaining = self.config.timeout_seconds - (time.time() - self._counters.opened_at)
        return max(0.0, remaining)

    async def execute(
        self,
        func: Callable[P, Awaitable[T] | T],
        *args: P.args,
        **kwargs: P.kwargs
    ) -> T:
        """
        Run ``func`` under the breaker.

        Raises:
            CircuitBreakerOpenError: the circuit is open and still cooling down.
        """
        if not await self.can_execute():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())

        try:
            if asyncio.iscoroutinefunction(func):
                result = await func(*args, **kwargs)
            else:
                result = func(*args, **kwargs)
        except Exception as e:
            await self.record_failure(e)
            raise

        await self.record_success()
        return result


def circuit_breaker(
    service_name: str,
    config: CircuitBreakerConfig | None = None
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """
    Decorator form for async callables.

    Usage:
        @circuit_breaker("openai")
        async def classify(url: str) -> dict:
            ...
    """
    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        breaker = CircuitBreaker.get_instance(service_name, config)

        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await breaker.execute(func, *args, **kwargs)

        return wrapper

    return decorator


def get_telegram_circuit_breaker() -> CircuitBreaker:
    """Breaker for the Telegram Bot API"""
    return CircuitBreaker.get_instance(
        "telegram",
        CircuitBreakerConfig(
            failure_threshold=5,
            success_threshold=2,
            timeout_seconds=30.0
        )
    )


def get_openai_circuit_breaker() -> CircuitBreaker:
    """Breaker for the document classification API"""
    return CircuitBreaker.get_instance(
        "openai",
        CircuitBreakerConfig(
            failure_threshold=3,
            success_threshold=1,
            timeout_seconds=60.0,
            half_open_max_calls=1,
        )
    )
