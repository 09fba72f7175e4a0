"""Unit tests for PauseReasonService."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from callpause.config.builtin_config import get_builtin_pause_reasons
from callpause.models.pause_models import PauseReasonDefinition, PauseReasonUpdate
from callpause.repositories.pause_repository import PauseReasonRepository
from callpause.services.exceptions import (
    InvalidPauseReasonError,
    PauseReasonConflictError,
    PauseReasonNotFoundError,
    PauseValidationError,
)
from callpause.services.pause_reason_service import (
    get_pause_reason_service,
    set_pause_reason_service,
)

pytestmark = pytest.mark.unit


class TestSeeding:

    def test_seed_creates_builtin_reasons(self, reason_service):
        created = reason_service.seed_reasons(get_builtin_pause_reasons())

        reasons = reason_service.list_reasons()
        assert created == len(get_builtin_pause_reasons())
        assert [r.code for r in reasons][:2] == ["BREAK", "LUNCH"]
        assert {r.code: r.max_duration_minutes for r in reasons}["TECHNICAL"] is None

    def test_seed_is_idempotent_and_keeps_edits(self, reason_service):
        reason_service.seed_reasons(get_builtin_pause_reasons())
        break_reason = next(r for r in reason_service.list_reasons() if r.code == "BREAK")
        reason_service.update_reason(break_reason.id, PauseReasonUpdate(max_duration_minutes=15))

        assert reason_service.seed_reasons(get_builtin_pause_reasons()) == 0
        assert reason_service.get_reason(break_reason.id).max_duration_minutes == 15


class TestLookup:

    def test_get_active_reason_is_case_insensitive(self, seeded_reasons):
        reason = seeded_reasons.get_active_reason(" break ")
        assert reason.code == "BREAK"
        assert reason.max_duration_minutes == 5

    @pytest.mark.parametrize("code", [None, "", "   "])
    def test_empty_code(self, seeded_reasons, code):
        with pytest.raises(PauseValidationError):
            seeded_reasons.get_active_reason(code)

    def test_unknown_code(self, seeded_reasons):
        with pytest.raises(InvalidPauseReasonError) as exc_info:
            seeded_reasons.get_active_reason("nap")
        assert exc_info.value.to_dict()["error"] == "invalid_pause_reason"

    def test_deactivated_reason_hidden_by_default(self, seeded_reasons):
        lunch = next(r for r in seeded_reasons.list_reasons() if r.code == "LUNCH")
        deactivated = seeded_reasons.deactivate_reason(lunch.id)

        assert deactivated.is_active is False
        assert "LUNCH" not in [r.code for r in seeded_reasons.list_reasons()]
        assert "LUNCH" in [r.code for r in seeded_reasons.list_reasons(include_inactive=True)]
        with pytest.raises(InvalidPauseReasonError):
            seeded_reasons.get_active_reason("LUNCH")

    def test_get_reason_not_found(self, seeded_reasons):
        with pytest.raises(PauseReasonNotFoundError):
            seeded_reasons.get_reason(9999)


class TestCreateUpdate:

    def test_create_reason(self, seeded_reasons):
        created = seeded_reasons.create_reason(
            PauseReasonDefinition(code="qa", label="QA Review", max_duration_minutes=20, sort_order=9)
        )

        assert created.id is not None
        assert created.code == "QA"
        assert seeded_reasons.get_active_reason("qa").label == "QA Review"

    def test_create_duplicate_code(self, seeded_reasons):
        with pytest.raises(PauseReasonConflictError):
            seeded_reasons.create_reason(PauseReasonDefinition(code="Break", label="Another break"))

    def test_create_race_maps_integrity_error(self, reason_service):
        with patch.object(PauseReasonRepository, "create", side_effect=IntegrityError("insert", {}, Exception())):
            with pytest.raises(PauseReasonConflictError):
                reason_service.create_reason(PauseReasonDefinition(code="QA", label="QA"))

    def test_partial_update(self, seeded_reasons):
        meeting = next(r for r in seeded_reasons.list_reasons() if r.code == "MEETING")

        updated = seeded_reasons.update_reason(meeting.id, PauseReasonUpdate(label="Team Meeting"))

        assert updated.label == "Team Meeting"
        assert updated.max_duration_minutes == meeting.max_duration_minutes
        assert updated.updated_at_us >= meeting.updated_at_us

    def test_update_missing(self, seeded_reasons):
        with pytest.raises(PauseReasonNotFoundError):
            seeded_reasons.update_reason(4242, PauseReasonUpdate(label="x"))


def test_singleton_requires_initialization(reason_service):
    set_pause_reason_service(None)
    with pytest.raises(RuntimeError):
        get_pause_reason_service()

    set_pause_reason_service(reason_service)
    try:
        assert get_pause_reason_service() is reason_service
    finally:
        set_pause_reason_service(None)
