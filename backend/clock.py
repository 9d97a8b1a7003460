from datetime import date, datetime, timedelta, timezone


class SystemClock:
    """Production clock returning real UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock(SystemClock):
    """Clock frozen at a given instant until moved with ``advance`` or ``set``."""

    def __init__(self, fixed: datetime):
        if fixed.tzinfo is None:
            fixed = fixed.replace(tzinfo=timezone.utc)
        self._now = fixed

    def now(self) -> datetime:
        return self._now

    def set(self, fixed: datetime) -> None:
        if fixed.tzinfo is None:
            fixed = fixed.replace(tzinfo=timezone.utc)
        self._now = fixed

    def advance(self, **kwargs) -> None:
        self._now = self._now + timedelta(**kwargs)
