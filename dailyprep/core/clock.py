from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from dailyprep.core.config import settings


class Clock:
    """Source of "now" and "today".

    Timestamps are naive UTC, matching what the store hands back; the
    calendar day is taken in the configured timezone.
    """

    def __init__(self, tz_name: str = "UTC"):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def today(self) -> date:
        return datetime.now(self.tz).date()

    def yesterday(self) -> date:
        return self.today() - timedelta(days=1)


class FixedClock(Clock):
    """Clock pinned to a given naive UTC instant."""

    def __init__(self, now: datetime):
        super().__init__()
        self._now = now

    def now(self) -> datetime:
        return self._now

    def today(self) -> date:
        return self._now.date()

    def advance(self, **kwargs) -> None:
        self._now = self._now + timedelta(**kwargs)


def get_clock() -> Clock:
    return Clock(settings.TIMEZONE)
