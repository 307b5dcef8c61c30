"""
Clock abstraction for date-driven renewal logic.

Every "now"/"today" used by the renewal engine and the disposition actions
comes from a Clock instance, so that window and defer-expiry checks can be
driven from tests with a fixed instant.
"""
from datetime import date, datetime, timedelta


class SystemClock:
    """Wall clock. Naive UTC, matching the DateTime columns."""

    def now(self) -> datetime:
        return datetime.utcnow()

    def today(self) -> date:
        return self.now().date()


class FixedClock(SystemClock):
    """Clock pinned to a given instant. Can be advanced."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, days: int = 0, **kwargs) -> datetime:
        self.instant = self.instant + timedelta(days=days, **kwargs)
        return self.instant

    def set(self, instant: datetime) -> None:
        self.instant = instant


def get_clock() -> SystemClock:
    """Dependency for FastAPI - override in tests with a FixedClock."""
    return SystemClock()
