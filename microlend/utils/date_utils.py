"""Date manipulation utilities"""

from datetime import datetime, timezone
from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_months(start: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of shorter months"""
    return start + relativedelta(months=months)
