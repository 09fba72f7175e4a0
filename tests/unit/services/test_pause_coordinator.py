"""Unit tests for PauseCoordinator."""

import asyncio
from unittest.mock import patch

import pytest
from sqlmodel import select

from callpause.models.constants import AgentPresence, AgentStatus
from callpause.models.db_models import Agent, PauseSession, QueueMember
from callpause.repositories.pause_repository import PauseSessionRepository
from callpause.repositories.presence_repository import PresenceRepository
from callpause.services.exceptions import (
    InvalidPauseReasonError,
    PauseValidationError,
    SessionLogWriteError,
)
from tests.utils import T0_US, add_agent, add_queue_member

pytestmark = pytest.mark.unit


def _sessions(session_factory, extension):
    with session_factory() as session:
        statement = select(PauseSession).where(PauseSession.extension == extension).order_by(PauseSession.id)
        return list(session.exec(statement).all())


def _members(session_factory, extension):
    with session_factory() as session:
        statement = select(QueueMember).where(QueueMember.interface == f"PJSIP/{extension}")
        return list(session.exec(statement).all())


@pytest.fixture
def agent_1001(test_database_session):
    add_queue_member(test_database_session, "sales", "1001")
    add_queue_member(test_database_session, "support", "1001")
    add_agent(test_database_session, "1001")
    return "1001"


class TestPause:

    @pytest.mark.asyncio
    async def test_pause_writes_every_target(self, coordinator, fake_ami, session_factory, agent_1001, clock):
        result = await coordinator.pause("1001", "break")

        assert result.extension == "1001"
        assert result.pause_reason.code == "BREAK"
        assert result.queues == ["sales", "support"]
        assert result.started_at_us == T0_US
        assert result.scheduled_unpause_at_us == T0_US + 5 * 60 * 1_000_000
        assert result.mirror.applied is True
        assert result.mirror.response == {"rows_updated": 2}
        assert all(r.applied for r in result.queue_results)
        assert result.reload.applied is True
        assert result.presence.applied is True
        assert result.pbx_fully_applied is True

        members = _members(session_factory, "1001")
        assert all(m.paused == 1 and m.paused_reason == "BREAK" for m in members)

        sessions = _sessions(session_factory, "1001")
        assert len(sessions) == 1
        assert sessions[0].is_open
        assert sessions[0].id == result.pause_session_id

        with session_factory() as session:
            agent = session.get(Agent, "1001")
        assert agent.presence == AgentPresence.PAUSED.value
        assert agent.pause_reason == "BREAK"

        assert coordinator.scheduler.has_timer("1001")

    @pytest.mark.asyncio
    async def test_pbx_actions_are_ordered(self, coordinator, fake_ami, agent_1001):
        await coordinator.pause("1001", "BREAK")

        assert [a["Action"] for a in fake_ami.actions] == ["QueuePause", "QueuePause", "Command"]
        first = fake_ami.actions[0]
        assert first["Queue"] == "sales"
        assert first["Interface"] == "PJSIP/1001"
        assert first["Paused"] == "1"
        assert first["Reason"] == "Short Break"
        assert fake_ami.actions[-1]["Command"] == "queue reload all"

    @pytest.mark.asyncio
    async def test_events_are_published_last(self, coordinator, published_events, agent_1001):
        result = await coordinator.pause("1001", "BREAK")

        published_events["paused"].assert_awaited_once()
        args = published_events["paused"].await_args.args
        assert args[0] == "1001"
        assert args[1].code == "BREAK"
        assert args[2] == result.started_at_us
        assert args[3] == ["sales", "support"]

        published_events["status"].assert_awaited_once()
        status_args = published_events["status"].await_args.args
        assert status_args[1] == AgentStatus.PAUSED

    @pytest.mark.asyncio
    async def test_no_memberships_uses_fallback_queue(self, coordinator, fake_ami):
        result = await coordinator.pause("2001", "LUNCH")

        assert result.queues == ["default"]
        assert result.mirror.response == {"rows_updated": 0}
        assert fake_ami.actions_named("QueuePause")[0]["Queue"] == "default"

    @pytest.mark.asyncio
    async def test_explicit_queue_limits_only_the_pbx_action(self, coordinator, fake_ami, session_factory, agent_1001):
        result = await coordinator.pause("1001", "BREAK", queue_name="support")

        assert result.queues == ["support"]
        assert [a["Queue"] for a in fake_ami.actions_named("QueuePause")] == ["support"]
        states = {m.queue_name: (m.paused, m.paused_reason) for m in _members(session_factory, "1001")}
        assert states == {"sales": (1, "BREAK"), "support": (1, "BREAK")}

    @pytest.mark.asyncio
    async def test_explicit_queue_unpause_clears_every_row(self, coordinator, fake_ami, session_factory, agent_1001):
        await coordinator.pause("1001", "BREAK")

        result = await coordinator.unpause("1001", queue_name="sales")

        assert result.queues == ["sales"]
        assert [a["Queue"] for a in fake_ami.actions_named("QueuePause")][-1:] == ["sales"]
        assert all(m.paused == 0 for m in _members(session_factory, "1001"))

    @pytest.mark.asyncio
    async def test_unknown_reason_writes_nothing(self, coordinator, fake_ami, session_factory, agent_1001):
        with pytest.raises(InvalidPauseReasonError) as exc_info:
            await coordinator.pause("1001", "NAP")

        assert exc_info.value.context["pause_reason_code"] == "NAP"
        assert fake_ami.actions == []
        assert _sessions(session_factory, "1001") == []
        assert all(m.paused == 0 for m in _members(session_factory, "1001"))

    @pytest.mark.asyncio
    async def test_inactive_reason_is_rejected(self, coordinator, seeded_reasons, agent_1001):
        meeting = next(r for r in seeded_reasons.list_reasons() if r.code == "MEETING")
        seeded_reasons.deactivate_reason(meeting.id)

        with pytest.raises(InvalidPauseReasonError):
            await coordinator.pause("1001", "MEETING")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("extension,code", [(None, "BREAK"), ("", "BREAK"), ("1001", None), ("1001", "  ")])
    async def test_missing_fields_are_validation_errors(self, coordinator, fake_ami, extension, code):
        with pytest.raises(PauseValidationError):
            await coordinator.pause(extension, code)
        assert fake_ami.actions == []

    @pytest.mark.asyncio
    async def test_failed_queue_action_does_not_block_other_queues(
        self, coordinator, fake_ami, session_factory, agent_1001
    ):
        fake_ami.fail_queues.add("sales")

        result = await coordinator.pause("1001", "BREAK")

        by_queue = {r.queue: r for r in result.queue_results}
        assert by_queue["sales"].applied is False
        assert "rejected" in by_queue["sales"].error
        assert by_queue["support"].applied is True
        assert result.reload.applied is True
        assert result.pbx_fully_applied is False
        assert len(_sessions(session_factory, "1001")) == 1

    @pytest.mark.asyncio
    async def test_pbx_unreachable_still_records_the_pause(self, coordinator, fake_ami, session_factory, agent_1001):
        fake_ami.disconnected = True

        result = await coordinator.pause("1001", "BREAK")

        assert not any(r.applied for r in result.queue_results)
        assert result.reload.applied is False
        assert result.mirror.applied is True
        assert _sessions(session_factory, "1001")[0].is_open
        assert coordinator.scheduler.has_timer("1001")

    @pytest.mark.asyncio
    async def test_ami_disabled_marks_pbx_steps_skipped(
        self, session_factory, seeded_reasons, test_settings, clock, published_events, agent_1001
    ):
        from callpause.services.pause_coordinator import PauseCoordinator

        coordinator = PauseCoordinator(session_factory, None, test_settings, now_func=clock.now_us)
        result = await coordinator.pause("1001", "TECHNICAL")

        assert all(r.skipped for r in result.queue_results)
        assert result.reload.skipped is True
        assert result.mirror.applied is True

    @pytest.mark.asyncio
    async def test_mirror_failure_is_reported_not_raised(self, coordinator, session_factory, agent_1001):
        with patch.object(PresenceRepository, "set_paused", side_effect=RuntimeError("database is locked")):
            result = await coordinator.pause("1001", "BREAK")

        assert result.mirror.applied is False
        assert "database is locked" in result.mirror.error
        assert all(r.applied for r in result.queue_results)
        assert len(_sessions(session_factory, "1001")) == 1

    @pytest.mark.asyncio
    async def test_session_log_failure_raises(self, coordinator, fake_ami, published_events, agent_1001):
        with patch.object(PauseSessionRepository, "open_session", side_effect=RuntimeError("disk full")):
            with pytest.raises(SessionLogWriteError) as exc_info:
                await coordinator.pause("1001", "BREAK")

        assert exc_info.value.error_code == "session_log_write_failed"
        # Best-effort writes before the log are not rolled back
        assert len(fake_ami.actions_named("QueuePause")) == 2
        assert not coordinator.scheduler.has_timer("1001")
        published_events["paused"].assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_agent_row_reports_presence_failure(self, coordinator):
        result = await coordinator.pause("3001", "BREAK")

        assert result.presence.applied is False
        assert result.presence.error == "agent record not found"

    @pytest.mark.asyncio
    async def test_repause_closes_prior_session(self, coordinator, session_factory, agent_1001, clock):
        first = await coordinator.pause("1001", "BREAK")
        await clock.advance(30)
        second = await coordinator.pause("1001", "LUNCH")

        assert second.replaced_session_id == first.pause_session_id

        sessions = _sessions(session_factory, "1001")
        assert len(sessions) == 2
        assert sessions[0].ended_at_us == second.started_at_us
        assert sessions[0].duration_seconds == 30
        assert sessions[0].auto_unpaused is False
        assert [s.is_open for s in sessions] == [False, True]

        timers = coordinator.scheduler.get_active_timers()
        assert len(timers) == 1
        assert timers[0].pause_session_id == second.pause_session_id
        assert timers[0].remaining_seconds == 60 * 60

    @pytest.mark.asyncio
    async def test_unbounded_repause_cancels_timer(self, coordinator, agent_1001):
        await coordinator.pause("1001", "BREAK")
        assert coordinator.scheduler.has_timer("1001")

        await coordinator.pause("1001", "TECHNICAL")

        assert not coordinator.scheduler.has_timer("1001")

    @pytest.mark.asyncio
    async def test_concurrent_pauses_leave_one_open_session(self, coordinator, session_factory, agent_1001):
        await asyncio.gather(
            coordinator.pause("1001", "BREAK"),
            coordinator.pause("1001", "LUNCH"),
            coordinator.pause("1001", "MEETING"),
        )

        open_sessions = [s for s in _sessions(session_factory, "1001") if s.is_open]
        assert len(open_sessions) == 1
        timers = coordinator.scheduler.get_active_timers()
        assert len(timers) == 1
        assert timers[0].pause_session_id == open_sessions[0].id


class TestUnpause:

    @pytest.mark.asyncio
    async def test_unpause_closes_session(self, coordinator, fake_ami, session_factory, agent_1001, clock):
        paused = await coordinator.pause("1001", "BREAK")
        await clock.advance(95)
        fake_ami.actions.clear()

        result = await coordinator.unpause("1001")

        assert result.session_closed is True
        assert result.pause_session_id == paused.pause_session_id
        assert result.pause_duration_seconds == 95
        assert result.auto_unpaused is False
        assert [a["Paused"] for a in fake_ami.actions_named("QueuePause")] == ["0", "0"]
        assert "Reason" not in fake_ami.actions_named("QueuePause")[0]
        assert not coordinator.scheduler.has_timer("1001")

        members = _members(session_factory, "1001")
        assert all(m.paused == 0 and m.paused_reason is None for m in members)

        session = _sessions(session_factory, "1001")[0]
        assert session.ended_at_us == T0_US + 95 * 1_000_000
        assert session.duration_seconds == 95

        with session_factory() as db:
            assert db.get(Agent, "1001").presence == AgentPresence.READY.value

    @pytest.mark.asyncio
    async def test_unpause_without_open_session_is_noop(self, coordinator, published_events, session_factory, agent_1001):
        result = await coordinator.unpause("1001")

        assert result.session_closed is False
        assert result.pause_duration_seconds == 0
        assert result.pause_session_id is None
        assert _sessions(session_factory, "1001") == []
        published_events["unpaused"].assert_awaited_once_with("1001", ["sales", "support"], 0, False)

    @pytest.mark.asyncio
    async def test_unpause_twice(self, coordinator, agent_1001, clock):
        await coordinator.pause("1001", "BREAK")
        await clock.advance(10)

        first = await coordinator.unpause("1001")
        second = await coordinator.unpause("1001")

        assert first.pause_duration_seconds == 10
        assert second.session_closed is False
        assert second.pause_duration_seconds == 0

    @pytest.mark.asyncio
    async def test_unpause_requires_extension(self, coordinator):
        with pytest.raises(PauseValidationError):
            await coordinator.unpause("  ")

    @pytest.mark.asyncio
    async def test_stale_session_id_is_ignored(self, coordinator, fake_ami, session_factory, agent_1001):
        first = await coordinator.pause("1001", "BREAK")
        await coordinator.pause("1001", "LUNCH")
        fake_ami.actions.clear()

        result = await coordinator.unpause("1001", auto_unpaused=True, expected_session_id=first.pause_session_id)

        assert result.session_closed is False
        assert result.mirror.skipped is True
        assert fake_ami.actions == []
        assert [s.is_open for s in _sessions(session_factory, "1001")] == [False, True]

    @pytest.mark.asyncio
    async def test_session_close_failure_raises(self, coordinator, agent_1001):
        await coordinator.pause("1001", "TECHNICAL")

        with patch.object(PauseSessionRepository, "close_session", side_effect=RuntimeError("disk full")):
            with pytest.raises(SessionLogWriteError):
                await coordinator.unpause("1001")
