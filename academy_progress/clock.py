"""
Academy Progress - Clock sources
"""

from datetime import datetime, date, timedelta
from typing import Optional


class Clock:
    """Source of 'now'. Injected so streak and goal logic can run against a fixed time."""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """Clock pinned to a settable instant."""

    def __init__(self, current: Optional[datetime] = None):
        self.current = current or datetime(2024, 1, 1, 12, 0, 0)

    def now(self) -> datetime:
        return self.current

    def set(self, current: datetime) -> None:
        self.current = current

    def advance(self, **kwargs) -> datetime:
        """Move forward by a timedelta given as keyword arguments (days=1, hours=2, ...)."""
        self.current = self.current + timedelta(**kwargs)
        return self.current
