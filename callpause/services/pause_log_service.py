"""
Read side of the pause session log: agent status, history, the paused-agents
board and the paginated audit log.
"""

import math
from typing import Any, Callable, Dict, List, Optional

from sqlmodel import Session

from callpause.config.settings import Settings, get_settings
from callpause.models.constants import QUEUE_MEMBER_PAUSED
from callpause.models.db_models import PauseSession, QueueMember
from callpause.models.pause_models import (
    AgentPauseHistory,
    AgentPauseStatus,
    PaginatedPauseLogs,
    PausedAgent,
    PauseReasonSummary,
    PauseSessionRecord,
    QueueMemberState,
)
from callpause.services.base_infrastructure import BasePauseInfra
from callpause.services.pause_reason_service import to_reason_summary
from callpause.utils.timestamp import US_PER_SECOND, elapsed_seconds, format_duration, now_us


def to_session_record(pause_session: PauseSession) -> PauseSessionRecord:
    record = PauseSessionRecord.model_validate(pause_session, from_attributes=True)
    if pause_session.duration_seconds is not None:
        record.duration_formatted = format_duration(pause_session.duration_seconds)
    return record


def to_member_state(member: QueueMember) -> QueueMemberState:
    return QueueMemberState(
        queue_name=member.queue_name,
        interface=member.interface,
        paused=member.paused == QUEUE_MEMBER_PAUSED,
        paused_reason=member.paused_reason,
    )


def remaining_seconds(pause_session: PauseSession, current_us: int) -> Optional[int]:
    """Whole seconds (rounded up) until the session's auto-unpause deadline, or None if unbounded."""
    if pause_session.scheduled_unpause_at_us is None:
        return None
    return max(0, math.ceil((pause_session.scheduled_unpause_at_us - current_us) / US_PER_SECOND))


class PauseLogService(BasePauseInfra):
    """Queries over pause sessions and the realtime mirror."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Optional[Settings] = None,
        now_func: Callable[[], int] = now_us,
    ) -> None:
        super().__init__(session_factory)
        self.settings = settings or get_settings()
        self._now = now_func

    def get_agent_status(self, extension: str) -> AgentPauseStatus:
        """
        Current pause state of an extension.

        An agent counts as paused when it has an open session or any queue
        membership row is paused, so a mirror left paused by a failed
        session write is still visible.
        """
        current_us = self._now()
        with self.get_repositories() as repos:
            open_session = repos.sessions.get_open_session(extension)
            members = repos.presence.get_queue_members(self.settings.interface_for(extension))
            agent = repos.presence.get_agent(extension)

            reason_summary: Optional[PauseReasonSummary] = None
            if open_session is not None:
                reason = (
                    repos.reasons.get_by_id(open_session.pause_reason_id)
                    if open_session.pause_reason_id is not None else None
                )
                reason_summary = (
                    to_reason_summary(reason) if reason is not None
                    else PauseReasonSummary(
                        code=open_session.pause_reason_code,
                        label=open_session.pause_reason_label or open_session.pause_reason_code,
                    )
                )

        member_states = [to_member_state(m) for m in members]
        is_paused = open_session is not None or any(m.paused for m in member_states)

        status = AgentPauseStatus(
            extension=extension,
            is_paused=is_paused,
            pause_reason=reason_summary,
            presence=agent.presence if agent else None,
            queue_memberships=member_states,
        )
        if open_session is not None:
            duration = elapsed_seconds(open_session.started_at_us, current_us)
            status.pause_session = to_session_record(open_session)
            status.pause_duration_seconds = duration
            status.pause_duration_formatted = format_duration(duration)
            status.remaining_seconds = remaining_seconds(open_session, current_us)
        return status

    def get_agent_history(
        self,
        extension: str,
        start_us: Optional[int] = None,
        end_us: Optional[int] = None,
        limit: int = 50,
    ) -> AgentPauseHistory:
        """Pause sessions for one extension with total closed pause time."""
        with self.get_repositories() as repos:
            sessions = repos.sessions.get_history(extension, start_us, end_us, limit)

        total = sum(s.duration_seconds or 0 for s in sessions)
        return AgentPauseHistory(
            extension=extension,
            sessions=[to_session_record(s) for s in sessions],
            total_pause_seconds=total,
            total_pause_formatted=format_duration(total),
        )

    def list_paused_agents(self) -> List[PausedAgent]:
        """Every open session with its live duration, longest-paused first."""
        current_us = self._now()
        with self.get_repositories() as repos:
            sessions = repos.sessions.list_open_sessions()

        paused: List[PausedAgent] = []
        for pause_session in sessions:
            duration = elapsed_seconds(pause_session.started_at_us, current_us)
            paused.append(PausedAgent(
                extension=pause_session.extension,
                pause_session=to_session_record(pause_session),
                current_duration_seconds=duration,
                current_duration_formatted=format_duration(duration),
                remaining_seconds=remaining_seconds(pause_session, current_us),
            ))
        return paused

    def list_logs(self, filters: Dict[str, Any], limit: int = 100, offset: int = 0) -> PaginatedPauseLogs:
        """Page through all pause sessions, newest first."""
        with self.get_repositories() as repos:
            sessions, total, total_seconds = repos.sessions.list_sessions(filters, limit, offset)

        return PaginatedPauseLogs(
            logs=[to_session_record(s) for s in sessions],
            total=total,
            limit=limit,
            offset=offset,
            has_more=offset + len(sessions) < total,
            total_pause_seconds=total_seconds,
            total_pause_formatted=format_duration(total_seconds),
        )

    def get_queue_members(self, extension: str) -> List[QueueMemberState]:
        with self.get_repositories() as repos:
            members = repos.presence.get_queue_members(self.settings.interface_for(extension))
        return [to_member_state(m) for m in members]

    def get_open_session(self, extension: str) -> Optional[PauseSessionRecord]:
        with self.get_repositories() as repos:
            pause_session = repos.sessions.get_open_session(extension)
        return to_session_record(pause_session) if pause_session else None

    def get_presence(self, extension: str) -> Optional[str]:
        with self.get_repositories() as repos:
            agent = repos.presence.get_agent(extension)
        return agent.presence if agent else None


_pause_log_service: Optional[PauseLogService] = None


def get_pause_log_service() -> PauseLogService:
    """
    Get the global pause log service.

    Raises:
        RuntimeError: If the service has not been initialized at startup
    """
    if _pause_log_service is None:
        raise RuntimeError("Pause log service not initialized")
    return _pause_log_service


def set_pause_log_service(service: Optional[PauseLogService]) -> None:
    global _pause_log_service
    _pause_log_service = service
