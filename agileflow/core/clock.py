from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock pinned to a given instant; ``advance`` moves it forward."""

    def __init__(self, current: Optional[datetime] = None) -> None:
        current = current or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current

    def now(self) -> datetime:
        return self._current

    def today(self) -> date:
        return self._current.date()

    def advance(self, days: int = 0, hours: int = 0, minutes: int = 0) -> datetime:
        self._current += timedelta(days=days, hours=hours, minutes=minutes)
        return self._current

    def set(self, current: datetime) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current
