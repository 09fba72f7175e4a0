"""
Exceptions for pause coordination.

Only validation errors and session log failures escape a pause or unpause
call; mirror, PBX and presence failures are recorded on the result instead.
"""

from typing import Any, Dict, Optional


class PauseError(Exception):
    """
    Base exception for pause coordination errors.

    Carries structured context for logging and API error bodies.
    """

    error_code = "pause_error"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        """
        Initialize pause error.

        Args:
            message: Human-readable error description
            context: Additional context data (extension, reason code, ...)
        """
        super().__init__(message)
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error": self.error_code,
            "error_type": self.__class__.__name__,
            "message": str(self),
            "context": self.context,
        }


class PauseValidationError(PauseError):
    """Missing or malformed input; nothing was written."""

    error_code = "validation_error"


class InvalidPauseReasonError(PauseValidationError):
    """Reason code is unknown or deactivated."""

    error_code = "invalid_pause_reason"


class PauseReasonNotFoundError(PauseError):
    """No pause reason with the requested ID."""

    error_code = "pause_reason_not_found"


class PauseReasonConflictError(PauseError):
    """A pause reason with the same code already exists."""

    error_code = "pause_reason_conflict"


class ExternalSystemError(PauseError):
    """
    A best-effort write (realtime mirror, PBX action, presence) failed.

    Never raised out of the coordinator; its text is stored on the
    operation result.
    """

    error_code = "external_system_error"

    def __init__(self, message: str, target: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.target = target

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["target"] = self.target
        return result


class SessionLogWriteError(PauseError):
    """
    The pause session log could not be written.

    Mirror and PBX writes that preceded the failure are not rolled back.
    """

    error_code = "session_log_write_failed"


class SchedulerInternalError(PauseError):
    """An auto-unpause callback failed; logged by the scheduler and never propagated."""

    error_code = "scheduler_internal_error"
