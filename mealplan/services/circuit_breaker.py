# mealplan/services/circuit_breaker.py
import math
import threading
import time
from typing import Callable

from mealplan.logging_utils import get_logger

logger = get_logger(__name__)


class CircuitBreakerState:
    """
    Process-wide provider cooldown.

    While ``clock() < blocked_until`` no provider call may be issued.
    ``blocked_until`` only ever moves forward.
    """

    def __init__(self, cooldown_seconds: float = 120.0, clock: Callable[[], float] = time.monotonic):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._blocked_until = 0.0
        self._lock = threading.Lock()

    @property
    def blocked_until(self) -> float:
        with self._lock:
            return self._blocked_until

    def is_open(self) -> bool:
        return self.remaining_seconds() > 0

    def remaining_seconds(self) -> float:
        with self._lock:
            return max(0.0, self._blocked_until - self._clock())

    def retry_after(self) -> int:
        """Whole seconds left on the cooldown, at least 1 while it is active."""
        remaining = self.remaining_seconds()
        if remaining <= 0:
            return 0
        return max(1, math.ceil(remaining))

    def trip(self, reason: str = "Rate limited") -> float:
        with self._lock:
            until = self._clock() + self.cooldown_seconds
            self._blocked_until = max(self._blocked_until, until)
            blocked_until = self._blocked_until
        logger.warning(
            "Provider cooldown enabled for %.0fs (reason: %s)",
            self.cooldown_seconds, reason,
        )
        return blocked_until

    def reset(self) -> None:
        with self._lock:
            self._blocked_until = 0.0
