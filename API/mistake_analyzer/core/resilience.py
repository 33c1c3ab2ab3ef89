"""
Fail-fast guards for model providers.

Nothing here retries: a failed model call surfaces to the caller at once. The
breaker only stops hammering a provider that keeps failing, turning further
calls into an immediate ``ProviderError`` until the cool-down has passed.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Callable

from mistake_analyzer.core.errors import ProviderError
from mistake_analyzer.core.settings import settings


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    name: str
    failure_threshold: int = 4
    cooldown_seconds: float = 30.0
    clock: Callable[[], float] = time.monotonic
    state: CircuitState = field(default=CircuitState.CLOSED)
    consecutive_failures: int = field(default=0)
    opened_at: float | None = field(default=None)
    probe_in_flight: bool = field(default=False)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def retry_after(self) -> float:
        if self.opened_at is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self.clock() - self.opened_at))

    def guard(self) -> None:
        """Raise ProviderError if the provider may not be called right now."""
        with self._lock:
            if self.state == CircuitState.OPEN and self.retry_after() <= 0:
                # Cool-down over: let exactly one probe call through.
                self.state = CircuitState.HALF_OPEN
                self.probe_in_flight = False
            if self.state == CircuitState.HALF_OPEN and not self.probe_in_flight:
                self.probe_in_flight = True
                return
            if self.state == CircuitState.CLOSED:
                return
            wait = self.retry_after()
        raise ProviderError(
            f"{self.name} is unavailable after repeated failures; retry in {wait:.0f}s",
            details={"breaker": self.name, "retry_after_seconds": round(wait, 1)},
        )

    def record_success(self) -> None:
        with self._lock:
            self.state = CircuitState.CLOSED
            self.consecutive_failures = 0
            self.opened_at = None
            self.probe_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self.consecutive_failures += 1
            if self.state == CircuitState.HALF_OPEN or self.consecutive_failures >= self.failure_threshold:
                self.state = CircuitState.OPEN
                self.opened_at = self.clock()
                self.probe_in_flight = False

    def status(self) -> dict:
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "retry_after_seconds": round(self.retry_after(), 1) if self.state == CircuitState.OPEN else 0.0,
        }


_registry: dict[str, CircuitBreaker] = {}
_registry_lock = Lock()


def get_breaker(name: str) -> CircuitBreaker:
    with _registry_lock:
        if name not in _registry:
            _registry[name] = CircuitBreaker(
                name=name,
                failure_threshold=settings.llm_breaker_failure_threshold,
                cooldown_seconds=settings.llm_breaker_cooldown_seconds,
            )
        return _registry[name]


def get_breakers_status() -> dict[str, dict]:
    with _registry_lock:
        breakers = list(_registry.values())
    return {breaker.name: breaker.status() for breaker in breakers}


def reset_breakers() -> None:
    """Forget all breakers (e.g. for tests)."""
    with _registry_lock:
        _registry.clear()
