"""Schema helpers shared by the scheduling modules."""

from datetime import datetime, time
from typing import Optional, Union


def parse_time_24(v: Union[str, time]) -> time:
    """Parse 24-hour time string (HH:MM or HH:MM:SS) to time."""
    if isinstance(v, time):
        return v
    if isinstance(v, str):
        v = v.strip()
        try:
            if len(v) == 5:  # HH:MM
                return datetime.strptime(v, "%H:%M").time()
            return datetime.strptime(v, "%H:%M:%S").time()
        except ValueError:
            pass
    raise ValueError("time must be a 24-hour string (e.g. 09:00, 09:45)")


def parse_optional_time_24(v: Optional[Union[str, time]]) -> Optional[time]:
    if v is None:
        return None
    return parse_time_24(v)


def minutes_between(start: time, end: time) -> int:
    return (end.hour * 60 + end.minute) - (start.hour * 60 + start.minute)
