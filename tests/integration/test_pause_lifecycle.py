"""
Integration tests for the pause lifecycle.

Wires the real coordinator, scheduler, log service and repositories on a
shared in-memory database and drives time with the manual clock.
"""

import asyncio

import pytest
from sqlmodel import select

from callpause.models.db_models import Agent, PauseSession, QueueMember
from callpause.services.auto_unpause_scheduler import AutoUnpauseScheduler
from callpause.services.pause_coordinator import PauseCoordinator
from callpause.services.pause_log_service import PauseLogService
from tests.utils import T0_US, add_agent, add_queue_member, settle_timers

pytestmark = pytest.mark.integration

MINUTE = 60
HOUR = 60 * MINUTE


@pytest.fixture
def call_center(test_database_session):
    """Two agents: 1001 in support and sales, 1002 in support."""
    add_queue_member(test_database_session, "support", "1001")
    add_queue_member(test_database_session, "sales", "1001")
    add_queue_member(test_database_session, "support", "1002")
    add_agent(test_database_session, "1001")
    add_agent(test_database_session, "1002")


@pytest.fixture
def log_service(session_factory, test_settings, clock) -> PauseLogService:
    return PauseLogService(session_factory, test_settings, now_func=clock.now_us)


def _sessions(session_factory, extension):
    with session_factory() as session:
        return list(session.exec(
            select(PauseSession).where(PauseSession.extension == extension).order_by(PauseSession.id)
        ).all())


def _mirror(session_factory, extension):
    with session_factory() as session:
        members = session.exec(select(QueueMember).where(QueueMember.interface == f"PJSIP/{extension}")).all()
        return {m.queue_name: m.paused for m in members}


def _presence(session_factory, extension):
    with session_factory() as session:
        return session.exec(select(Agent).where(Agent.extension == extension)).one().presence


@pytest.mark.asyncio
async def test_manual_unpause_before_limit(call_center, coordinator, scheduler, clock, fake_ami,
                                           session_factory, published_events):
    """BREAK (5 min) ended by hand after 2 minutes never fires the timer."""
    result = await coordinator.pause("1001", "BREAK")

    assert result.queues == ["sales", "support"]
    assert result.scheduled_unpause_at_us == T0_US + 5 * MINUTE * 1_000_000
    assert _mirror(session_factory, "1001") == {"sales": 1, "support": 1}
    assert _presence(session_factory, "1001") == "PAUSED"

    await clock.advance(2 * MINUTE)
    unpaused = await coordinator.unpause("1001")

    assert unpaused.pause_duration_seconds == 120
    assert unpaused.auto_unpaused is False
    assert scheduler.get_active_timers() == []

    await clock.advance(10 * MINUTE)
    await settle_timers(scheduler)

    [logged] = _sessions(session_factory, "1001")
    assert (logged.duration_seconds, logged.auto_unpaused) == (120, False)
    assert _mirror(session_factory, "1001") == {"sales": 0, "support": 0}
    assert _presence(session_factory, "1001") == "READY"
    assert [a["Paused"] for a in fake_ami.actions_named("QueuePause")] == ["1", "1", "0", "0"]
    published_events["unpaused"].assert_awaited_once_with("1001", ["sales", "support"], 120, False)


@pytest.mark.asyncio
async def test_unbounded_pause_stays_open(call_center, coordinator, scheduler, clock, log_service, session_factory):
    """TECHNICAL has no limit: no timer and the session is still open a day later."""
    result = await coordinator.pause("1002", "TECHNICAL")

    assert result.scheduled_unpause_at_us is None
    assert scheduler.has_timer("1002") is False

    await clock.advance(24 * HOUR)
    await settle_timers(scheduler)

    status = log_service.get_agent_status("1002")
    assert status.is_paused is True
    assert status.pause_duration_seconds == 24 * HOUR
    assert status.remaining_seconds is None
    assert _sessions(session_factory, "1002")[0].ended_at_us is None


@pytest.mark.asyncio
async def test_auto_unpause_at_limit(call_center, coordinator, scheduler, clock, fake_ami,
                                     session_factory, published_events):
    await coordinator.pause("1001", "BREAK")

    await clock.advance(5 * MINUTE - 1)
    await settle_timers(scheduler)
    assert _sessions(session_factory, "1001")[0].ended_at_us is None

    await clock.advance(1)
    await settle_timers(scheduler)

    [logged] = _sessions(session_factory, "1001")
    assert (logged.duration_seconds, logged.auto_unpaused) == (300, True)
    assert _mirror(session_factory, "1001") == {"sales": 0, "support": 0}
    assert _presence(session_factory, "1001") == "READY"
    assert scheduler.get_active_timers() == []
    assert fake_ami.actions_named("Command")[-1]["Command"] == "queue reload all"
    published_events["unpaused"].assert_awaited_once_with("1001", ["sales", "support"], 300, True)

    # A manual unpause after the timer fired is a no-op
    again = await coordinator.unpause("1001")
    assert again.session_closed is False
    assert len(_sessions(session_factory, "1001")) == 1


@pytest.mark.asyncio
async def test_repause_keeps_single_open_session(call_center, coordinator, scheduler, clock, session_factory):
    first = await coordinator.pause("1001", "BREAK")
    await clock.advance(30)
    second = await coordinator.pause("1001", "LUNCH")

    assert second.replaced_session_id == first.pause_session_id
    sessions = _sessions(session_factory, "1001")
    assert [s.ended_at_us is None for s in sessions] == [False, True]
    assert sessions[0].duration_seconds == 30

    # The BREAK deadline passes without closing the LUNCH session
    await clock.advance(10 * MINUTE)
    await settle_timers(scheduler)

    assert _sessions(session_factory, "1001")[1].ended_at_us is None
    [timer] = scheduler.get_active_timers()
    assert timer.pause_session_id == second.pause_session_id


@pytest.mark.asyncio
async def test_concurrent_pauses_serialize(call_center, coordinator, session_factory):
    await asyncio.gather(
        coordinator.pause("1001", "BREAK"),
        coordinator.pause("1001", "LUNCH"),
        coordinator.pause("1001", "MEETING"),
    )

    open_sessions = [s for s in _sessions(session_factory, "1001") if s.ended_at_us is None]
    assert len(open_sessions) == 1
    assert len(_sessions(session_factory, "1001")) == 3


class TestRestartRecovery:
    """A new scheduler picks up open sessions left by a previous process."""

    @pytest.fixture
    async def restarted(self, session_factory, fake_ami, test_settings, clock, published_events):
        created = []

        def start():
            coordinator = PauseCoordinator(session_factory, fake_ami, test_settings, now_func=clock.now_us)
            scheduler = AutoUnpauseScheduler(
                session_factory, coordinator, now_func=clock.now_us, sleep_func=clock.sleep
            )
            coordinator.attach_scheduler(scheduler)
            created.append(scheduler)
            return coordinator, scheduler

        yield start
        for scheduler in created:
            await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_timer_restored_with_remaining_time(self, call_center, seeded_reasons, restarted,
                                                      clock, session_factory):
        coordinator, scheduler = restarted()
        await coordinator.pause("1001", "BREAK")
        await scheduler.shutdown()

        await clock.advance(MINUTE)
        _, new_scheduler = restarted()
        summary = await new_scheduler.restore()

        assert (summary.restored, summary.expired_unpaused) == (1, 0)
        assert new_scheduler.get_remaining_seconds("1001") == 4 * MINUTE

        await clock.advance(4 * MINUTE)
        await settle_timers(new_scheduler)

        [logged] = _sessions(session_factory, "1001")
        assert (logged.duration_seconds, logged.auto_unpaused) == (300, True)

    @pytest.mark.asyncio
    async def test_overdue_session_closed_on_restore(self, call_center, seeded_reasons, restarted,
                                                     clock, session_factory):
        coordinator, scheduler = restarted()
        await coordinator.pause("1001", "BREAK")
        await coordinator.pause("1002", "TECHNICAL")
        await scheduler.shutdown()

        await clock.advance(10 * MINUTE)
        _, new_scheduler = restarted()
        summary = await new_scheduler.restore()

        assert (summary.restored, summary.expired_unpaused, summary.skipped) == (0, 1, 1)
        [logged] = _sessions(session_factory, "1001")
        assert (logged.duration_seconds, logged.auto_unpaused) == (600, True)
        assert _mirror(session_factory, "1001") == {"sales": 0, "support": 0}
        assert _sessions(session_factory, "1002")[0].ended_at_us is None
