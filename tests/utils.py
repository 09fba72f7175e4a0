"""
Test utilities shared across unit and integration tests.

- ManualClock: deterministic clock + sleep for auto-unpause timers
- FakeAMIClient: records AMI actions and fails on demand
- Factories for queue members, agents and pause sessions
"""

import asyncio
from typing import Any, Dict, List, Optional, Set, Tuple

from sqlmodel import Session

from callpause.integrations.ami.exceptions import AMIActionError, AMIConnectionError
from callpause.models.db_models import Agent, PauseSession, QueueMember

T0_US = 1_760_000_000_000_000


class ManualClock:
    """
    Simulated time in microseconds.

    sleep() suspends until advance() moves the clock past the wake-up time,
    so timers fire only when a test says time has passed.
    """

    def __init__(self, start_us: int = T0_US):
        self.current_us = start_us
        self._sleepers: List[Tuple[int, asyncio.Future]] = []

    def now_us(self) -> int:
        return self.current_us

    async def sleep(self, seconds: float) -> None:
        wake_us = self.current_us + round(seconds * 1_000_000)
        if wake_us <= self.current_us:
            await asyncio.sleep(0)
            return

        future = asyncio.get_running_loop().create_future()
        entry = (wake_us, future)
        self._sleepers.append(entry)
        try:
            await future
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    async def advance(self, seconds: float) -> None:
        """Move time forward and let woken tasks start running."""
        self.current_us += round(seconds * 1_000_000)
        for wake_us, future in list(self._sleepers):
            if wake_us <= self.current_us and not future.done():
                future.set_result(None)
        for _ in range(5):
            await asyncio.sleep(0)

    @property
    def pending_sleepers(self) -> int:
        return len(self._sleepers)


async def settle_timers(scheduler) -> None:
    """Wait until every auto-unpause callback that already fired has finished."""
    for _ in range(5):
        await asyncio.sleep(0)
    while scheduler._firing:
        await asyncio.gather(*list(scheduler._firing), return_exceptions=True)


class FakeAMIClient:
    """Stand-in for AMIClient that records every action."""

    def __init__(self):
        self.actions: List[Dict[str, str]] = []
        self.fail_actions: Set[str] = set()
        self.fail_queues: Set[str] = set()
        self.disconnected = False
        self.queue_status_events: List[Dict[str, Any]] = []
        self.is_connected = True

    async def execute_action(self, action: Dict[str, str]) -> Dict[str, Any]:
        self.actions.append(dict(action))
        if self.disconnected:
            raise AMIConnectionError("AMI connection is not open", action=action["Action"])
        if action["Action"] in self.fail_actions or action.get("Queue") in self.fail_queues:
            raise AMIActionError(f"{action['Action']} rejected", action=action["Action"])
        return {"Response": "Success", "ActionID": f"fake-{len(self.actions)}"}

    async def execute_list_action(self, action: Dict[str, str]):
        self.actions.append(dict(action))
        if self.disconnected:
            raise AMIConnectionError("AMI connection is not open", action=action["Action"])
        return {"Response": "Success", "EventList": "start"}, list(self.queue_status_events)

    async def close(self) -> None:
        self.is_connected = False

    def actions_named(self, name: str) -> List[Dict[str, str]]:
        return [a for a in self.actions if a["Action"] == name]


def add_queue_member(session: Session, queue_name: str, extension: str, paused: int = 0) -> QueueMember:
    member = QueueMember(
        queue_name=queue_name,
        interface=f"PJSIP/{extension}",
        membername=f"Agent {extension}",
        state_interface=f"PJSIP/{extension}",
        paused=paused,
    )
    session.add(member)
    session.commit()
    session.refresh(member)
    return member


def add_agent(session: Session, extension: str, presence: str = "READY") -> Agent:
    agent = Agent(extension=extension, name=f"Agent {extension}", presence=presence)
    session.add(agent)
    session.commit()
    session.refresh(agent)
    return agent


def add_pause_session(
    session: Session,
    extension: str,
    reason_code: str,
    started_at_us: int,
    reason_id: Optional[int] = None,
    ended_at_us: Optional[int] = None,
    scheduled_unpause_at_us: Optional[int] = None,
) -> PauseSession:
    pause_session = PauseSession(
        extension=extension,
        pause_reason_id=reason_id,
        pause_reason_code=reason_code,
        pause_reason_label=reason_code.title(),
        started_at_us=started_at_us,
        ended_at_us=ended_at_us,
        duration_seconds=(ended_at_us - started_at_us) // 1_000_000 if ended_at_us else None,
        queue_name="support",
        scheduled_unpause_at_us=scheduled_unpause_at_us,
    )
    session.add(pause_session)
    session.commit()
    session.refresh(pause_session)
    return pause_session
