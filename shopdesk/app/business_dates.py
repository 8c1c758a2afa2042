from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Literal, Optional, Union

# Business calendar policy: Cairo civil time as a fixed UTC+2 offset.
# Egypt has not observed DST since 2011, so no tz database lookup is used.
CAIRO_FIXED_OFFSET = timezone(timedelta(hours=2), "Africa/Cairo")

SUPERVISOR_WINDOW_DAYS = 7

DATE_PRESETS = (
    "today",
    "yesterday",
    "this-week",
    "last-week",
    "this-month",
    "last-month",
    "last-3-months",
    "this-year",
)

DateLike = Union[date, str, None]


def business_today(now: Optional[datetime] = None) -> date:
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        # naive datetimes are UTC
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(CAIRO_FIXED_OFFSET).date()


def parse_date(value: DateLike) -> Optional[date]:
    """
    Lenient YYYY-MM-DD parsing for filter inputs.

    - None / "" / unparsable text -> None
    - datetimes are truncated to their date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()[:10]
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def invoice_date_bounds(role: str, today: Optional[date] = None) -> Optional[dict]:
    """
    Invoice dates a role may view, as an inclusive {"from", "to"} window.

    Managers are unrestricted (None): callers must not filter at all.
    """
    today = today or business_today()
    if role == "manager":
        return None
    if role == "sales":
        return {"from": today, "to": today}
    if role == "supervisor":
        return {"from": today - timedelta(days=SUPERVISOR_WINDOW_DAYS - 1), "to": today}
    raise ValueError(f"unknown role: {role!r}")


def clamp_date(supplied: DateLike, bound: DateLike, direction: Literal["min", "max"]) -> Optional[date]:
    b = parse_date(bound)
    s = parse_date(supplied)
    if s is None:
        return b
    if direction == "min":
        return b if s < b else s
    if direction == "max":
        return b if s > b else s
    raise ValueError(f"invalid clamp direction: {direction!r}")


def month_bounds(today: Optional[date] = None) -> tuple[date, date]:
    today = today or business_today()
    first = today.replace(day=1)
    next_first = (first + timedelta(days=32)).replace(day=1)
    return first, next_first - timedelta(days=1)


def preset_range(preset: Optional[str], today: Optional[date] = None) -> tuple[date, date]:
    today = today or business_today()
    p = (preset or "").strip().lower()
    if p == "yesterday":
        d = today - timedelta(days=1)
        return d, d
    if p == "this-week":
        monday = today - timedelta(days=today.weekday())
        return monday, today
    if p == "last-week":
        monday = today - timedelta(days=today.weekday())
        return monday - timedelta(days=7), monday - timedelta(days=1)
    if p == "this-month":
        return today.replace(day=1), today
    if p == "last-month":
        last = today.replace(day=1) - timedelta(days=1)
        return last.replace(day=1), last
    if p == "last-3-months":
        return _shift_months(today, -3), today
    if p == "this-year":
        return date(today.year, 1, 1), today
    return today, today


def _shift_months(d: date, months: int) -> date:
    # Day overflow rolls into the next month (Jan 31 + 1 month -> Mar 2/3).
    idx = d.year * 12 + (d.month - 1) + months
    first = date(idx // 12, idx % 12 + 1, 1)
    return first + timedelta(days=d.day - 1)


def day_range_to_timestamps(start: date, end: date) -> tuple[datetime, datetime]:
    # Inclusive civil dates -> half-open [start, end + 1 day) in Cairo time.
    return (
        datetime.combine(start, time.min, tzinfo=CAIRO_FIXED_OFFSET),
        datetime.combine(end + timedelta(days=1), time.min, tzinfo=CAIRO_FIXED_OFFSET),
    )
