"""Day key utilities.

Every calendar computation in the engine works on day keys: plain
``datetime.date`` values read in the business timezone. Instants are
converted once at the edge and never used for date arithmetic.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from swimschool.core.settings import settings

BUSINESS_TZ = ZoneInfo(settings.timezone)

DayKey = date

DayKeyLike = Union[datetime, date, str]


def now_utc() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def parse_day_key(value: str) -> DayKey:
    """Parse a ``YYYY-MM-DD`` string."""
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError as e:
        raise ValueError(f"Invalid day key: {value!r}") from e


def format_day_key(key: DayKey) -> str:
    return key.isoformat()


def to_day_key(value: DayKeyLike) -> DayKey:
    """Normalise an instant, date or ISO string to a business-local day key.

    Aware datetimes are converted into the business timezone first. Naive
    datetimes are taken to already be business-local wall time.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(BUSINESS_TZ)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return parse_day_key(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to a day key")


def add_days(key: DayKey, n: int) -> DayKey:
    return key + timedelta(days=n)


def compare(a: DayKey, b: DayKey) -> int:
    """Three-way comparison returning -1, 0 or 1."""
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


def day_of_week(key: DayKey) -> int:
    """Weekday of a day key, Monday=0 .. Sunday=6."""
    return key.weekday()


def max_day_key(*keys: Optional[DayKey]) -> Optional[DayKey]:
    """Latest of the given keys, ignoring None."""
    present = [k for k in keys if k is not None]
    return max(present) if present else None


def today_day_key(now: Optional[datetime] = None) -> DayKey:
    """Today's date in the business timezone."""
    return to_day_key(now or now_utc())


def day_key_to_utc_start(key: DayKey) -> datetime:
    """Local midnight of the day key, expressed in UTC."""
    local_midnight = datetime(key.year, key.month, key.day, tzinfo=BUSINESS_TZ)
    return local_midnight.astimezone(timezone.utc)
