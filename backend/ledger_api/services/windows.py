import calendar
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

from ledger_api.core.config import settings


@dataclass(frozen=True)
class DateRange:
    """Inclusive range compared against the local date of ``created_at``."""

    start: date
    end: date

    def cache_key(self) -> str:
        return f"{self.start.isoformat()}:{self.end.isoformat()}"


def local_today(tz: str | None = None) -> date:
    return datetime.now(ZoneInfo(tz or settings.tz)).date()


def month_range(day: date) -> DateRange:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return DateRange(day.replace(day=1), day.replace(day=last_day))


def resolve_window(
    window: str | None,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> DateRange | None:
    """Turn a window selector into a concrete date range.

    ``None`` means all time. ``this_month`` is the calendar month of the
    current year, not every year's month with the same number.
    """
    if window is None:
        return None
    today = today or local_today()
    if window == "today":
        return DateRange(today, today)
    if window == "this_month":
        return month_range(today)
    if window == "custom":
        if start_date is None or end_date is None:
            raise ValueError("custom window needs start_date and end_date")
        return DateRange(start_date, end_date)
    raise ValueError(f"Unknown window {window!r}")
