"""
Clock

Supplies "today" to everything that needs it. Injected rather than read
from the system clock, so tests and back-fill runs can freeze time.
"""

from abc import ABC, abstractmethod
from datetime import date, timedelta


class Clock(ABC):
    """Source of the current date."""

    @abstractmethod
    def today(self) -> date:
        pass


class SystemClock(Clock):
    """The machine's local date."""

    def today(self) -> date:
        return date.today()


class FixedClock(Clock):
    """A clock frozen at a given date. Can be moved forward explicitly."""

    def __init__(self, current: date):
        self._current = current

    def today(self) -> date:
        return self._current

    def set(self, current: date) -> None:
        self._current = current

    def advance(self, days: int = 1) -> date:
        self._current = self._current + timedelta(days=days)
        return self._current
