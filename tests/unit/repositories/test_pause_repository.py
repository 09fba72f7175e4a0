"""Unit tests for the pause reason and pause session repositories."""

import pytest

from callpause.models.db_models import PauseReason, PauseSession
from callpause.repositories.pause_repository import PauseReasonRepository, PauseSessionRepository
from tests.utils import T0_US, add_pause_session

pytestmark = pytest.mark.unit

SECOND_US = 1_000_000


@pytest.fixture
def reason_repo(test_database_session):
    return PauseReasonRepository(test_database_session)


@pytest.fixture
def session_repo(test_database_session):
    return PauseSessionRepository(test_database_session)


class TestPauseReasonRepository:

    def test_get_by_code_normalizes(self, reason_repo):
        reason_repo.create(PauseReason(code="BREAK", label="Break", max_duration_minutes=5))

        assert reason_repo.get_by_code(" break ").label == "Break"
        assert reason_repo.get_by_code("LUNCH") is None

    def test_get_active_by_code_skips_inactive(self, reason_repo):
        reason_repo.create(PauseReason(code="OLD", label="Old", is_active=False))

        assert reason_repo.get_by_code("OLD") is not None
        assert reason_repo.get_active_by_code("OLD") is None

    def test_list_order(self, reason_repo):
        reason_repo.create(PauseReason(code="B", label="Beta", sort_order=2))
        reason_repo.create(PauseReason(code="A", label="Alpha", sort_order=2))
        reason_repo.create(PauseReason(code="C", label="Gamma", sort_order=1))
        reason_repo.create(PauseReason(code="D", label="Delta", sort_order=0, is_active=False))

        assert [r.code for r in reason_repo.list_reasons()] == ["C", "A", "B"]
        assert [r.code for r in reason_repo.list_reasons(include_inactive=True)] == ["D", "C", "A", "B"]

    def test_is_bounded(self):
        assert PauseReason(code="X", label="X", max_duration_minutes=5).is_bounded is True
        assert PauseReason(code="X", label="X", max_duration_minutes=0).is_bounded is False
        assert PauseReason(code="X", label="X").is_bounded is False


class TestPauseSessionRepository:

    def test_open_session_closes_prior(self, session_repo, test_database_session):
        prior = add_pause_session(test_database_session, "1001", "BREAK", T0_US)

        created, closed = session_repo.open_session(
            PauseSession(extension="1001", pause_reason_code="LUNCH", started_at_us=T0_US + 45 * SECOND_US)
        )

        assert [c.id for c in closed] == [prior.id]
        assert closed[0].ended_at_us == T0_US + 45 * SECOND_US
        assert closed[0].duration_seconds == 45
        assert closed[0].auto_unpaused is False
        assert created.is_open
        assert session_repo.get_open_session("1001").id == created.id

    def test_open_session_other_extension_untouched(self, session_repo, test_database_session):
        other = add_pause_session(test_database_session, "1002", "BREAK", T0_US)

        _, closed = session_repo.open_session(
            PauseSession(extension="1001", pause_reason_code="BREAK", started_at_us=T0_US)
        )

        assert closed == []
        assert session_repo.get_open_session("1002").id == other.id

    def test_close_session(self, session_repo, test_database_session):
        pause_session = add_pause_session(test_database_session, "1001", "BREAK", T0_US)

        closed = session_repo.close_session(pause_session, T0_US + 300 * SECOND_US + 999_999, auto_unpaused=True)

        assert closed.duration_seconds == 300
        assert closed.auto_unpaused is True
        assert session_repo.get_open_session("1001") is None

    def test_close_before_start_clamps_to_zero(self, session_repo, test_database_session):
        pause_session = add_pause_session(test_database_session, "1001", "BREAK", T0_US)

        closed = session_repo.close_session(pause_session, T0_US - SECOND_US, auto_unpaused=False)

        assert closed.duration_seconds == 0

    def test_set_scheduled_unpause(self, session_repo, test_database_session):
        pause_session = add_pause_session(test_database_session, "1001", "BREAK", T0_US)

        assert session_repo.set_scheduled_unpause(pause_session.id, T0_US + 300 * SECOND_US) is True
        assert session_repo.get_by_id(pause_session.id).scheduled_unpause_at_us == T0_US + 300 * SECOND_US
        assert session_repo.set_scheduled_unpause(9999, T0_US) is False

    def test_open_sessions_with_reasons(self, session_repo, test_database_session):
        reason = PauseReasonRepository(test_database_session).create(
            PauseReason(code="BREAK", label="Break", max_duration_minutes=5)
        )
        add_pause_session(test_database_session, "1001", "BREAK", T0_US, reason_id=reason.id)
        add_pause_session(test_database_session, "1002", "GONE", T0_US - SECOND_US)
        add_pause_session(test_database_session, "1003", "BREAK", T0_US - 2 * SECOND_US,
                          reason_id=reason.id, ended_at_us=T0_US)

        rows = session_repo.list_open_sessions_with_reasons()

        assert [(s.extension, r.code if r else None) for s, r in rows] == [("1002", None), ("1001", "BREAK")]
