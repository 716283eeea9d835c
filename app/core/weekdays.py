"""Day-of-week convention shared by assignments, entries and substitutions: 0=Sunday .. 6=Saturday."""

from datetime import date

from app.core.exceptions import ValidationError

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def validate_day_of_week(day_of_week: int) -> int:
    if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
        raise ValidationError("day_of_week must be an integer between 0 (Sunday) and 6 (Saturday)")
    return day_of_week


def day_of_week_for(d: date) -> int:
    """Weekday index of a calendar date in the same 0..6 convention."""
    # date.weekday() counts from Monday
    return (d.weekday() + 1) % 7


def day_name(day_of_week: int) -> str:
    if 0 <= day_of_week <= 6:
        return DAY_NAMES[day_of_week]
    return ""
