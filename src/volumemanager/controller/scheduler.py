"""
Period suffix generation for time-partitioned volume groups.
"""
from datetime import date, datetime, timedelta
from typing import List

from ..models import Interval
from ..utils.time import shift_months


def period_suffix(interval: Interval, now: datetime, offset: int = 0) -> str:
    """
    Returns the suffix of the period `offset` periods away from the one containing `now`.

    Every suffix is a zero-padded YYYYMMDD date (the first day of the period
    for month and year intervals), so suffixes compare the same way as strings
    and as integers. Interval NONE has no periods and yields an empty suffix.
    """
    today = now.date()
    if interval == Interval.NONE:
        return ""
    if interval == Interval.DAY:
        period = today + timedelta(days=offset)
    elif interval == Interval.MONTH:
        period = shift_months(today, offset)
    elif interval == Interval.YEAR:
        period = date(today.year + offset, 1, 1)
    else:
        raise ValueError(f"Unsupported interval: {interval}")
    return period.strftime("%Y%m%d")


def generate_suffixes(interval: Interval, retention: int, ahead: int, now: datetime) -> List[str]:
    """
    Suffixes of every period a group should currently have, oldest first.

    Offsets run from -retention to +ahead inclusive, 0 being the current
    period. Interval NONE always yields a single empty suffix.
    """
    if interval == Interval.NONE:
        return [""]
    return [period_suffix(interval, now, offset) for offset in range(-retention, ahead + 1)]
