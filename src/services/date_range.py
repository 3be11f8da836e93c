# services/date_range.py

"""
Périodes du dashboard.

Formats acceptés :
    "2025-01-01_2025-01-31"     → bornes incluses, fin à 23:59:59.999999 UTC
    "last_30_days" / "last30Days" / "this_month" ...   → presets
    None / ""                    → pas de filtre (tout l'historique)
"""

from datetime import datetime, date, time, timedelta, timezone
from typing import Optional
import logging

from errors import InvalidDateRangeError
from models import DateRange

logger = logging.getLogger(__name__)

PRESET_LABELS = {
    "today": "Today",
    "yesterday": "Yesterday",
    "last7days": "Last 7 days",
    "last30days": "Last 30 days",
    "last90days": "Last 90 days",
    "thismonth": "This month",
    "lastmonth": "Last month",
    "thisquarter": "This quarter",
    "thisyear": "This year",
    "lastyear": "Last year",
}


def parse_date_range(value: Optional[str], now: Optional[datetime] = None) -> Optional[DateRange]:
    if value is None or not str(value).strip():
        return None

    value = str(value).strip()
    preset_key = _preset_key(value)

    if preset_key in PRESET_LABELS:
        return preset_range(preset_key, now)

    parts = value.split("_")
    if len(parts) != 2:
        raise InvalidDateRangeError(value, "format attendu YYYY-MM-DD_YYYY-MM-DD")

    try:
        start_day = date.fromisoformat(parts[0])
        end_day = date.fromisoformat(parts[1])
    except ValueError:
        raise InvalidDateRangeError(value, "date illisible")

    if end_day < start_day:
        raise InvalidDateRangeError(value, "la fin précède le début")

    return _day_span(start_day, end_day)


def format_date_range(date_range: DateRange) -> str:
    return f"{date_range.start.date().isoformat()}_{date_range.end.date().isoformat()}"


def preset_range(name: str, now: Optional[datetime] = None) -> DateRange:
    key = _preset_key(name)
    if key not in PRESET_LABELS:
        raise InvalidDateRangeError(name, "preset inconnu")

    today = (now or datetime.now(timezone.utc)).astimezone(timezone.utc).date()

    if key == "today":
        start, end = today, today
    elif key == "yesterday":
        start = end = today - timedelta(days=1)
    elif key == "last7days":
        start, end = today - timedelta(days=6), today
    elif key == "last30days":
        start, end = today - timedelta(days=29), today
    elif key == "last90days":
        start, end = today - timedelta(days=89), today
    elif key == "thismonth":
        start = today.replace(day=1)
        end = _month_end(start)
    elif key == "lastmonth":
        end = today.replace(day=1) - timedelta(days=1)
        start = end.replace(day=1)
    elif key == "thisquarter":
        first_month = ((today.month - 1) // 3) * 3 + 1
        start = date(today.year, first_month, 1)
        end = _month_end(date(today.year, first_month + 2, 1))
    elif key == "thisyear":
        start, end = date(today.year, 1, 1), date(today.year, 12, 31)
    else:
        start, end = date(today.year - 1, 1, 1), date(today.year - 1, 12, 31)

    return _day_span(start, end, PRESET_LABELS[key])


def day_range(day: date) -> DateRange:
    """Une journée UTC complète, utilisée par les snapshots."""
    return _day_span(day, day, day.isoformat())


def _day_span(start_day: date, end_day: date, label: str = "") -> DateRange:
    return DateRange(
        start=datetime.combine(start_day, time.min, tzinfo=timezone.utc),
        end=datetime.combine(end_day, time.max, tzinfo=timezone.utc),
        label=label,
    )


def _month_end(first_day: date) -> date:
    next_month = (first_day.replace(day=28) + timedelta(days=4)).replace(day=1)
    return next_month - timedelta(days=1)


def _preset_key(value: str) -> str:
    return value.lower().replace("_", "").replace("-", "")
