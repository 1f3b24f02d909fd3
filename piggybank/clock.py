"""
Clock Module

Source of "now" for the ledger and the interest engine. Production code uses
SystemClock; tests drive period enumeration with FixedClock.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone, timedelta
import threading


class Clock(ABC):
    """Abstract time source returning timezone-aware datetimes"""

    @abstractmethod
    def now(self) -> datetime:
        """Current instant (timezone-aware)"""
        pass


class SystemClock(Clock):
    """Wall-clock time in UTC"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Manually controlled clock"""

    def __init__(self, start: datetime):
        if start.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        with self._lock:
            self._now = moment

    def advance(self, **kwargs) -> datetime:
        """Move forward by ``timedelta(**kwargs)`` and return the new instant"""
        with self._lock:
            self._now = self._now + timedelta(**kwargs)
            return self._now
