from enum import Enum


class TimetableStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class SubstitutionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PeriodSlotType(str, Enum):
    REGULAR = "regular"
    SHORT = "short"
    ASSEMBLY = "assembly"
    BREAK = "break"
    LUNCH = "lunch"
    ACTIVITY = "activity"
    ZERO_PERIOD = "zero_period"


TEACHING_SLOT_TYPES = frozenset({PeriodSlotType.REGULAR.value, PeriodSlotType.SHORT.value})


class StaffType(str, Enum):
    TEACHING = "teaching"
    NON_TEACHING = "non_teaching"
