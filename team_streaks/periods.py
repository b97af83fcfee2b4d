"""Period key calculator — canonical week and month identifiers.

Week keys look like ``2024-W11`` and month keys like ``2024-M03``. Week
numbering generalises ISO-8601: week 1 of a week-year is the first week
(starting on ``first_weekday``) that has at least
``minimum_days_in_first_week`` days inside the calendar year. With the
defaults (Monday, 4) the result matches ``date.isocalendar()``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from zoneinfo import ZoneInfo

from .utils import now_utc

MONDAY = 0
SUNDAY = 6


class Period(Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def _resolve_tz(tz: str | tzinfo | None) -> tzinfo:
    if tz is None:
        return timezone.utc
    if isinstance(tz, str):
        return timezone.utc if tz.upper() == "UTC" else ZoneInfo(tz)
    return tz


def _local_date(instant: datetime, tz: str | tzinfo | None) -> date:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(_resolve_tz(tz)).date()


def _first_week_start(year: int, first_weekday: int, min_days: int) -> date:
    """Date on which week 1 of *year* begins."""
    jan1 = date(year, 1, 1)
    offset = (jan1.weekday() - first_weekday) % 7
    start = jan1 - timedelta(days=offset)
    if 7 - offset < min_days:
        start += timedelta(days=7)
    return start


def week_of_year(
    day: date,
    first_weekday: int = MONDAY,
    minimum_days_in_first_week: int = 4,
) -> tuple[int, int]:
    """Return ``(week_year, week_number)`` for a calendar date."""
    year = day.year
    start = _first_week_start(year, first_weekday, minimum_days_in_first_week)
    if day < start:
        year -= 1
        start = _first_week_start(year, first_weekday, minimum_days_in_first_week)
    else:
        next_start = _first_week_start(year + 1, first_weekday, minimum_days_in_first_week)
        if day >= next_start:
            year += 1
            start = next_start
    return year, (day - start).days // 7 + 1


def week_key(
    instant: datetime,
    tz: str | tzinfo | None = "UTC",
    first_weekday: int = MONDAY,
    minimum_days_in_first_week: int = 4,
) -> str:
    """Canonical week key (``YYYY-Www``) for *instant* in *tz*."""
    year, week = week_of_year(
        _local_date(instant, tz), first_weekday, minimum_days_in_first_week,
    )
    return f"{year:04d}-W{week:02d}"


def month_key(instant: datetime, tz: str | tzinfo | None = "UTC") -> str:
    """Canonical month key (``YYYY-Mmm``) for *instant* in *tz*."""
    day = _local_date(instant, tz)
    return f"{day.year:04d}-M{day.month:02d}"


# ══════════════════════════════════════════════════════════
#  Stored-key normalisation
# ══════════════════════════════════════════════════════════

def _parse_key(raw: str | None, marker: str, upper_bound: int) -> tuple[int, int] | None:
    if not raw:
        return None
    text = raw.strip().upper()
    if not text:
        return None

    if "-" in text:
        parts = text.split("-")
        if len(parts) != 2 or not parts[0].isdigit():
            return None
        number = parts[1][1:] if parts[1].startswith(marker) else parts[1]
        if not number.isdigit():
            return None
        year, value = int(parts[0]), int(number)
    else:
        digits = "".join(ch for ch in text if ch.isdigit())
        if len(digits) < 5:
            return None
        year, value = int(digits[:4]), int(digits[4:])

    if not 1 <= value <= upper_bound:
        return None
    return year, value


def normalize_week_key(raw: str | None) -> str | None:
    """Canonicalise a stored week key (``2024-w7``, ``202407`` …) or return None."""
    parsed = _parse_key(raw, "W", 53)
    if parsed is None:
        return None
    return f"{parsed[0]:04d}-W{parsed[1]:02d}"


def normalize_month_key(raw: str | None) -> str | None:
    """Canonicalise a stored month key (``2024-3``, ``202403`` …) or return None."""
    parsed = _parse_key(raw, "M", 12)
    if parsed is None:
        return None
    return f"{parsed[0]:04d}-M{parsed[1]:02d}"


@dataclass(frozen=True)
class PeriodCalendar:
    """Timezone and week convention bundled for repeated key lookups."""

    timezone: str = "UTC"
    first_weekday: int = MONDAY
    minimum_days_in_first_week: int = 4

    @classmethod
    def from_config(cls, config) -> PeriodCalendar:
        return cls(
            timezone=config.timezone,
            first_weekday=config.first_weekday_index,
            minimum_days_in_first_week=config.minimum_days_in_first_week,
        )

    def week_key(self, instant: datetime | None = None) -> str:
        return week_key(
            instant or now_utc(),
            self.timezone,
            self.first_weekday,
            self.minimum_days_in_first_week,
        )

    def month_key(self, instant: datetime | None = None) -> str:
        return month_key(instant or now_utc(), self.timezone)

    def key_for(self, period: Period, instant: datetime | None = None) -> str:
        if period is Period.WEEKLY:
            return self.week_key(instant)
        return self.month_key(instant)
