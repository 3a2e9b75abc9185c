"""Time-based online/offline circuit breaker."""
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    Binary online/offline signal.

    trip() goes offline for `cooldown_seconds`; after that is_online reads
    True again on its own (half-open: the next dispatch is a real attempt).
    record_success() goes online immediately. No exponential backoff.
    """

    def __init__(self, cooldown_seconds: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._offline_until: Optional[float] = None

    @property
    def is_online(self) -> bool:
        if self._offline_until is None:
            return True
        if self._clock() >= self._offline_until:
            self._offline_until = None
            logger.info("Sync breaker cooldown elapsed - back online")
            return True
        return False

    @property
    def offline_until(self) -> Optional[float]:
        """Clock reading at which the breaker closes again, or None while online."""
        return self._offline_until if not self.is_online else None

    def trip(self) -> None:
        """Go offline and (re)start the cooldown."""
        self._offline_until = self._clock() + self.cooldown_seconds
        logger.warning(
            "Sync endpoint unreachable - offline for %.0fs", self.cooldown_seconds
        )

    def record_success(self) -> None:
        if self._offline_until is not None:
            logger.info("Sync succeeded while offline - back online")
        self._offline_until = None
