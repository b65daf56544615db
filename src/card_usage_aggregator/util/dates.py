from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta


PRESETS = ("this-month", "last-month", "last-3-months")


def search_upper_bound(end: date) -> date:
    """
    Gmail's `before:` is exclusive, so the bound is the day after the last day we want included.
    """
    return end + timedelta(days=1)


def format_search_date(d: date) -> str:
    # Gmail query syntax; no zero padding (e.g. "2024/3/5").
    return f"{d.year}/{d.month}/{d.day}"


def format_record_date(year: int, month: int, day: int) -> Optional[str]:
    """
    Zero-padded "YYYY/MM/DD", or None when the parts are not a real calendar date.
    """
    try:
        d = date(int(year), int(month), int(day))
    except (TypeError, ValueError):
        return None
    return f"{d.year:04d}/{d.month:02d}/{d.day:02d}"


def preset_range(name: str, *, today: Optional[date] = None) -> tuple[date, date]:
    """
    Quick-select ranges:
    - "this-month": first..last day of the current month
    - "last-month": first..last day of the previous month
    - "last-3-months": first day of the month two months back..last day of the current month
    """
    today = today or date.today()
    first_of_month = today.replace(day=1)
    last_of_month = first_of_month + relativedelta(months=1) - timedelta(days=1)

    key = (name or "").strip().lower()
    if key == "this-month":
        return first_of_month, last_of_month
    if key == "last-month":
        return first_of_month - relativedelta(months=1), first_of_month - timedelta(days=1)
    if key == "last-3-months":
        return first_of_month - relativedelta(months=2), last_of_month
    raise ValueError(f"Unknown preset {name!r} (expected one of: {', '.join(PRESETS)})")
