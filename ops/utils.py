import asyncio
import math
from datetime import datetime, date, timedelta

from django.utils import timezone
from django.utils.dateparse import parse_datetime, parse_date


def run_async(coro):
    """Helper to run async code in sync Django views."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def normalize_datetime(value):
    """Firestore timestamps, aware/naive datetimes and ISO strings -> aware datetime."""
    if value is None:
        return None
    if isinstance(value, str):
        parsed = parse_datetime(value)
        if parsed is None:
            parsed_date = parse_date(value)
            if parsed_date is None:
                return None
            parsed = datetime(parsed_date.year, parsed_date.month, parsed_date.day)
        value = parsed
    if isinstance(value, datetime):
        if timezone.is_naive(value):
            return timezone.make_aware(value, timezone.get_current_timezone())
        return value
    if isinstance(value, date):
        return timezone.make_aware(
            datetime(value.year, value.month, value.day), timezone.get_current_timezone()
        )
    if hasattr(value, "timestamp"):
        return datetime.fromtimestamp(value.timestamp(), tz=timezone.get_current_timezone())
    return None


def format_short_date(value) -> str:
    dt = normalize_datetime(value)
    if dt is None:
        return ""
    local = timezone.localtime(dt)
    return f"{local.month}/{local.day}/{local.year}"


def date_key(value) -> str:
    """YYYY-MM-DD key used for availability documents."""
    if isinstance(value, datetime):
        value = timezone.localtime(normalize_datetime(value)).date()
    return value.strftime("%Y-%m-%d")


def start_of_month(now=None):
    now = timezone.localtime(now or timezone.now())
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def add_months(dt, months):
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    return dt.replace(year=year, month=month, day=1)


def end_of_month(dt):
    """Last day of dt's month (date-level precision, time kept)."""
    return add_months(dt.replace(day=1), 1) - timedelta(days=1)


def days_between(later, earlier) -> int:
    """Whole days from earlier to later, rounded up."""
    return math.ceil((later - earlier).total_seconds() / 86400)


def to_number(value, default=0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def nested_get(data, dotted_key, default=None):
    current = data
    for part in dotted_key.split("."):
        if not isinstance(current, dict):
            return default
        current = current.get(part)
        if current is None:
            return default
    return current


def text_matches(search: str, *values) -> bool:
    needle = (search or "").lower()
    return any(needle in str(value).lower() for value in values if value)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive scores (round() would pick the even neighbour)."""
    return math.floor(value + 0.5)
