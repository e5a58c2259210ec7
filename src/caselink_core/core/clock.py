"""Clock abstraction injected wherever the engine compares time."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional

from caselink_core.models.common import ensure_utc


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC"""
        pass


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Synthetic clock for tests and manual sweeps.

    Usage:
        clock = FixedClock(datetime(2025, 1, 1, tzinfo=timezone.utc))
        clock.advance(hours=24)
        await sweeper.run_reminder_pass(clock)
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = ensure_utc(start) if start else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = ensure_utc(value)

    def advance(self, delta: Optional[timedelta] = None, **kwargs) -> datetime:
        """Move forward by a timedelta or timedelta keyword arguments"""
        step = delta if delta is not None else timedelta(**kwargs)
        if step < timedelta(0):
            raise ValueError("FixedClock cannot move backwards")
        self._now = self._now + step
        return self._now
