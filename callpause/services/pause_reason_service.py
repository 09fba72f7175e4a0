"""
Pause reason catalog management.

Reasons are created, edited and deactivated by supervisors; they are never
hard-deleted because closed pause sessions keep referring to them.
"""

from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from callpause.models.db_models import PauseReason
from callpause.models.pause_models import (
    PauseReasonDefinition,
    PauseReasonResponse,
    PauseReasonSummary,
    PauseReasonUpdate,
)
from callpause.services.base_infrastructure import BasePauseInfra
from callpause.services.exceptions import (
    InvalidPauseReasonError,
    PauseReasonConflictError,
    PauseReasonNotFoundError,
    PauseValidationError,
)
from callpause.utils.logger import get_module_logger
from callpause.utils.timestamp import now_us

logger = get_module_logger(__name__)


def to_reason_response(reason: PauseReason) -> PauseReasonResponse:
    return PauseReasonResponse.model_validate(reason, from_attributes=True)


def to_reason_summary(reason: PauseReason) -> PauseReasonSummary:
    return PauseReasonSummary(code=reason.code, label=reason.label, color=reason.color, icon=reason.icon)


class PauseReasonService(BasePauseInfra):
    """CRUD and seeding for the pause reason catalog."""

    def list_reasons(self, include_inactive: bool = False) -> List[PauseReasonResponse]:
        with self.get_repositories() as repos:
            return [to_reason_response(r) for r in repos.reasons.list_reasons(include_inactive)]

    def get_reason(self, reason_id: int) -> PauseReasonResponse:
        with self.get_repositories() as repos:
            reason = repos.reasons.get_by_id(reason_id)
            if reason is None:
                raise PauseReasonNotFoundError(f"Pause reason {reason_id} not found", {"id": reason_id})
            return to_reason_response(reason)

    def get_active_reason(self, code: Optional[str]) -> PauseReason:
        """
        Resolve an active reason by code.

        Raises:
            PauseValidationError: If code is empty
            InvalidPauseReasonError: If no active reason has this code
        """
        if not code or not code.strip():
            raise PauseValidationError("pause_reason_code is required")

        with self.get_repositories() as repos:
            reason = repos.reasons.get_active_by_code(code)
        if reason is None:
            raise InvalidPauseReasonError(
                f"Invalid or inactive pause reason: {code}",
                {"pause_reason_code": code.strip().upper()},
            )
        return reason

    def create_reason(self, definition: PauseReasonDefinition) -> PauseReasonResponse:
        """
        Create a new reason.

        Raises:
            PauseReasonConflictError: If the code already exists (active or not)
        """
        with self.get_repositories() as repos:
            if repos.reasons.get_by_code(definition.code) is not None:
                raise PauseReasonConflictError(
                    f"Pause reason code already exists: {definition.code}",
                    {"code": definition.code},
                )
            try:
                reason = repos.reasons.create(PauseReason(**definition.model_dump()))
            except IntegrityError as e:
                # Concurrent create with the same code
                raise PauseReasonConflictError(
                    f"Pause reason code already exists: {definition.code}",
                    {"code": definition.code},
                ) from e

            logger.info(f"Created pause reason {reason.code} (id={reason.id})")
            return to_reason_response(reason)

    def update_reason(self, reason_id: int, changes: PauseReasonUpdate) -> PauseReasonResponse:
        """Apply a partial update. The code itself is immutable."""
        with self.get_repositories() as repos:
            reason = repos.reasons.get_by_id(reason_id)
            if reason is None:
                raise PauseReasonNotFoundError(f"Pause reason {reason_id} not found", {"id": reason_id})

            for field_name, value in changes.model_dump(exclude_unset=True).items():
                setattr(reason, field_name, value)
            reason.updated_at_us = now_us()

            reason = repos.reasons.update(reason)
            logger.info(f"Updated pause reason {reason.code} (id={reason.id})")
            return to_reason_response(reason)

    def deactivate_reason(self, reason_id: int) -> PauseReasonResponse:
        """Soft-delete a reason; agents already paused with it stay paused."""
        return self.update_reason(reason_id, PauseReasonUpdate(is_active=False))

    def seed_reasons(self, definitions: Dict[str, PauseReasonDefinition]) -> int:
        """
        Create any missing reasons. Existing codes are left untouched so
        supervisor edits survive restarts.

        Returns:
            Number of reasons created
        """
        created = 0
        with self.get_repositories() as repos:
            for code, definition in definitions.items():
                if repos.reasons.get_by_code(code) is not None:
                    continue
                repos.reasons.create(PauseReason(**definition.model_dump()))
                created += 1

        if created:
            logger.info(f"Seeded {created} pause reason(s)")
        else:
            logger.debug("All configured pause reasons already present")
        return created


_pause_reason_service: Optional[PauseReasonService] = None


def get_pause_reason_service() -> PauseReasonService:
    """
    Get the global pause reason service.

    Raises:
        RuntimeError: If the service has not been initialized at startup
    """
    if _pause_reason_service is None:
        raise RuntimeError("Pause reason service not initialized")
    return _pause_reason_service


def set_pause_reason_service(service: Optional[PauseReasonService]) -> None:
    global _pause_reason_service
    _pause_reason_service = service
