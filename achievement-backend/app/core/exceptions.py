# app/core/exceptions.py
"""
Error taxonomy for the achievement lifecycle.

Every error raised by the stores, the authorization layer or the lifecycle
coordinator derives from AchievementError so the API layer can map it to an
HTTP status in one place. ConsistencyWarning is not an error: it is the
signal emitted when a cross-store sequence stopped halfway.
"""
from typing import Optional, Dict, Any


class AchievementError(Exception):
    """Base exception for all achievement lifecycle errors"""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "detail": self.message,
            **({"context": self.details} if self.details else {}),
        }


class ValidationError(AchievementError):
    """Malformed or missing input. Never retried automatically."""

    status_code = 400


class Forbidden(AchievementError):
    """The caller's scope or role does not cover the target"""

    status_code = 403

    def __init__(self, message: str = "Not authorized", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class NotFound(AchievementError):
    """Referenced id does not exist in the target store"""

    status_code = 404

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found", {"id": identifier})


class InvalidTransition(AchievementError):
    """The current status does not allow the attempted operation"""

    status_code = 409

    def __init__(self, current_status: str, operation: str, reference_id: Optional[str] = None):
        self.current_status = current_status
        self.operation = operation
        self.reference_id = reference_id
        super().__init__(
            f"cannot {operation} an achievement in status '{current_status}'",
            {"status": current_status, "operation": operation},
        )


class StorageError(AchievementError):
    """Transport, connectivity or timeout failure in one of the stores.

    The outcome of a write that raised this is ambiguous: re-read the current
    status before retrying the whole operation.
    """

    status_code = 503


class ConsistencyWarning(Warning):
    """A cross-store write sequence partially completed.

    Handed to ConsistencyMonitor, which logs it for out-of-band
    reconciliation. Never shown to API callers.
    """

    def __init__(
        self,
        operation: str,
        reason: str,
        reference_id: Optional[str] = None,
        detail_id: Optional[str] = None,
        student_id: Optional[str] = None,
    ):
        self.operation = operation
        self.reason = reason
        self.reference_id = reference_id
        self.detail_id = detail_id
        self.student_id = student_id
        super().__init__(
            f"{operation}: {reason} (reference={reference_id}, detail={detail_id}, student={student_id})"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "reason": self.reason,
            "reference_id": self.reference_id,
            "detail_id": self.detail_id,
            "student_id": self.student_id,
        }
