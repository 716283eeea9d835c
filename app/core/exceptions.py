from typing import Any, Dict, List, Optional

from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_detail(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFoundError(ServiceError):
    code = "NOT_FOUND"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ValidationError(ServiceError):
    """Malformed input the schema layer could not catch (time ranges, period lists)."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ConflictError(ServiceError):
    code = "CONFLICT"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class CodeExistsError(ConflictError):
    code = "CODE_EXISTS"


class InUseError(ConflictError):
    code = "IN_USE"


class NotDraftError(ConflictError):
    code = "NOT_DRAFT"

    def __init__(self, message: str = "Only draft timetables can be modified") -> None:
        super().__init__(message)


class AlreadyPublishedError(ConflictError):
    code = "ALREADY_PUBLISHED"

    def __init__(self, message: str = "Only draft timetables can be published") -> None:
        super().__init__(message)


class NotPendingError(ConflictError):
    code = "NOT_PENDING"

    def __init__(self, message: str = "Substitution is not pending") -> None:
        super().__init__(message)


class NotCancellableError(ConflictError):
    code = "NOT_CANCELLABLE"

    def __init__(self, message: str = "Substitution cannot be cancelled") -> None:
        super().__init__(message)


class TeacherConflictError(ConflictError):
    """Teacher already committed at the requested day and period slot."""

    code = "TEACHER_CONFLICT"

    def __init__(self, message: str, conflicts: Optional[List[Any]] = None) -> None:
        super().__init__(message)
        self.conflicts = conflicts or []

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["conflicts"] = [
            c.model_dump(mode="json") if hasattr(c, "model_dump") else c for c in self.conflicts
        ]
        return detail


class SubstitutionConflictError(ConflictError):
    code = "SUBSTITUTION_CONFLICT"

    def __init__(
        self,
        message: str = "A substitution already exists for this teacher on this date and period",
    ) -> None:
        super().__init__(message)


class SubstituteConflictError(ConflictError):
    code = "SUBSTITUTE_CONFLICT"

    def __init__(
        self,
        message: str = "Substitute teacher is not free for the requested periods",
        period_slot_ids: Optional[List[Any]] = None,
    ) -> None:
        super().__init__(message)
        self.period_slot_ids = period_slot_ids or []

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["period_slot_ids"] = [str(p) for p in self.period_slot_ids]
        return detail
