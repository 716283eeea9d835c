from app.core.models.shift import Shift
from app.core.models.day_pattern import DayPattern, DayPatternAssignment
from app.core.models.period_slot import PeriodSlot
from app.core.models.timetable import Timetable, TimetableEntry
from app.core.models.substitution import Substitution, SubstitutionPeriod
from app.core.models.staff import Staff

__all__ = [
    "DayPattern",
    "DayPatternAssignment",
    "PeriodSlot",
    "Shift",
    "Staff",
    "Substitution",
    "SubstitutionPeriod",
    "Timetable",
    "TimetableEntry",
]
