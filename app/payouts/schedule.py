# app/payouts/schedule.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from settings import Settings


@dataclass(frozen=True)
class PayoutSchedule:
    """Weekly payout slot, e.g. Friday 18:00 America/Los_Angeles. weekday: Monday=0."""

    weekday: int = 4
    hour: int = 18
    tz: str = "America/Los_Angeles"

    @classmethod
    def from_settings(cls, settings: Settings) -> "PayoutSchedule":
        return cls(
            weekday=settings.PAYOUT_SCHEDULE_WEEKDAY,
            hour=settings.PAYOUT_SCHEDULE_HOUR,
            tz=settings.PAYOUT_SCHEDULE_TZ,
        )

    def next_run_after(self, now: datetime) -> datetime:
        zone = ZoneInfo(self.tz)
        local = now.astimezone(zone)
        days_ahead = (self.weekday - local.weekday()) % 7
        candidate = (local + timedelta(days=days_ahead)).replace(hour=self.hour, minute=0, second=0, microsecond=0)
        if candidate <= local:
            candidate = candidate + timedelta(days=7)
        return candidate.astimezone(timezone.utc)
