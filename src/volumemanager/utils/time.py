import re
from datetime import date, timedelta


def parse_duration(duration_str: str | int | float) -> timedelta:
    """
    Parses a duration string like '1h30m' (or plain seconds) into a timedelta object.

    Raises:
        ValueError: if the string is not a valid duration.
        TypeError: if the value is neither a string nor a number.
    """
    if isinstance(duration_str, bool):
        raise TypeError(f"Invalid duration: {duration_str}")
    if isinstance(duration_str, (int, float)):
        return timedelta(seconds=duration_str)
    if not isinstance(duration_str, str):
        raise TypeError(f"Invalid duration type: {type(duration_str).__name__}")
    if not duration_str:
        return timedelta()
    if duration_str.isdigit():
        return timedelta(seconds=int(duration_str))

    parts = re.findall(r"(\d+)([dhms])", duration_str)
    if not parts or "".join([p[0] + p[1] for p in parts]) != duration_str:
        raise ValueError(f"Invalid duration format: {duration_str}")

    duration_dict = {}
    for value, unit in parts:
        value = int(value)
        if unit == "d":
            duration_dict["days"] = duration_dict.get("days", 0) + value
        elif unit == "h":
            duration_dict["hours"] = duration_dict.get("hours", 0) + value
        elif unit == "m":
            duration_dict["minutes"] = duration_dict.get("minutes", 0) + value
        elif unit == "s":
            duration_dict["seconds"] = duration_dict.get("seconds", 0) + value

    return timedelta(**duration_dict)


def shift_months(day: date, months: int) -> date:
    """Returns the first day of the month lying `months` calendar months away from `day`."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)
