"""
Pause State Coordinator

Owns the pause/unpause write sequence across the realtime queue mirror,
the PBX, the pause session log, the auto-unpause scheduler, agent presence
and the event stream.

Write order for both operations:
    1. queue_members mirror   (best effort)
    2. AMI QueuePause per queue (best effort, each queue independent)
    3. AMI queue reload        (best effort)
    4. pause session log       (must succeed, raises SessionLogWriteError)
    5. scheduler arm / cancel
    6. agent presence          (best effort)
    7. events                  (best effort)

Every pause/unpause for an extension runs under that extension's lock.
"""

import asyncio
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from sqlmodel import Session

from callpause.config.settings import Settings, get_settings
from callpause.integrations.ami.actions import command_action, queue_pause_action
from callpause.integrations.ami.client import AMIClient
from callpause.models.constants import AgentPresence, AgentStatus
from callpause.models.db_models import PauseReason, PauseSession
from callpause.models.pause_models import (
    ExternalCallResult,
    PauseResult,
    QueueActionResult,
    UnpauseResult,
)
from callpause.services.base_infrastructure import BasePauseInfra
from callpause.services.events.event_helpers import (
    publish_agent_paused,
    publish_agent_status,
    publish_agent_unpaused,
)
from callpause.services.exceptions import (
    InvalidPauseReasonError,
    PauseValidationError,
    SessionLogWriteError,
)
from callpause.services.pause_reason_service import to_reason_summary
from callpause.utils.logger import get_module_logger
from callpause.utils.timestamp import US_PER_SECOND, now_us

if TYPE_CHECKING:
    from callpause.services.auto_unpause_scheduler import AutoUnpauseScheduler

logger = get_module_logger(__name__)

MIRROR_TARGET = "queue_members"
RELOAD_TARGET = "reload"
PRESENCE_TARGET = "presence"


class PauseCoordinator(BasePauseInfra):
    """Coordinates agent pause state across the database, the PBX and listeners."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ami_client: Optional[AMIClient] = None,
        settings: Optional[Settings] = None,
        now_func: Callable[[], int] = now_us,
    ) -> None:
        """
        Args:
            session_factory: Returns a new database session
            ami_client: PBX action executor; None disables PBX actions
            settings: Application settings
            now_func: Clock returning microseconds since epoch
        """
        super().__init__(session_factory)
        self.ami_client = ami_client
        self.settings = settings or get_settings()
        self._now = now_func
        self.scheduler: Optional["AutoUnpauseScheduler"] = None
        self._locks: Dict[str, asyncio.Lock] = {}

    def attach_scheduler(self, scheduler: "AutoUnpauseScheduler") -> None:
        self.scheduler = scheduler

    def extension_lock(self, extension: str) -> asyncio.Lock:
        """Per-extension mutex serializing pause, unpause and timer fires."""
        lock = self._locks.get(extension)
        if lock is None:
            lock = self._locks[extension] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    # Pause
    # ------------------------------------------------------------------

    async def pause(
        self,
        extension: Optional[str],
        reason_code: Optional[str],
        queue_name: Optional[str] = None,
    ) -> PauseResult:
        """
        Pause an agent.

        Pausing an extension that already has an open session closes that
        session and opens a new one; the previous auto-unpause timer is
        replaced.

        Args:
            extension: Agent extension
            reason_code: Pause reason code (case-insensitive)
            queue_name: Restrict to one queue; defaults to every membership

        Returns:
            PauseResult with the outcome of every external write

        Raises:
            PauseValidationError: Missing extension or reason code
            InvalidPauseReasonError: Unknown or inactive reason
            SessionLogWriteError: The session log could not be written
        """
        extension = self._require_extension(extension)
        if not reason_code or not reason_code.strip():
            raise PauseValidationError(
                "extension and pause_reason_code are required", {"extension": extension}
            )
        queue_name = queue_name.strip() if queue_name and queue_name.strip() else None

        reason = await self._run_db(lambda repos: repos.reasons.get_active_by_code(reason_code))
        if reason is None:
            raise InvalidPauseReasonError(
                f"Invalid or inactive pause reason: {reason_code}",
                {"extension": extension, "pause_reason_code": reason_code.strip().upper()},
            )

        async with self.extension_lock(extension):
            return await self._pause_locked(extension, reason, queue_name)

    async def _pause_locked(self, extension: str, reason: PauseReason, queue_name: Optional[str]) -> PauseResult:
        interface = self.settings.interface_for(extension)
        queues = await self._resolve_queues(interface, queue_name)

        logger.info(f"Pausing {extension} ({reason.code}) on queues {queues}")

        mirror = await self._write_mirror(extension, interface, True, reason.code)
        queue_results = await self._queue_pause_all(extension, interface, queues, True, reason.label)
        reload = await self._reload_queues(extension)

        new_session, closed = await self._open_session(extension, reason, queues)

        if self.scheduler is not None:
            if reason.is_bounded:
                self.scheduler.arm(extension, reason, new_session.id)
            else:
                # An unbounded pause replacing a bounded one must not inherit its timer
                self.scheduler.cancel(extension)

        presence = await self._update_presence(extension, AgentPresence.PAUSED, reason.code)

        summary = to_reason_summary(reason)
        await publish_agent_paused(extension, summary, new_session.started_at_us, queues)
        await publish_agent_status(extension, AgentStatus.PAUSED, summary)

        result = PauseResult(
            extension=extension,
            pause_reason=summary,
            pause_session_id=new_session.id,
            started_at_us=new_session.started_at_us,
            queues=queues,
            mirror=mirror,
            queue_results=queue_results,
            reload=reload,
            presence=presence,
            scheduled_unpause_at_us=new_session.scheduled_unpause_at_us,
            replaced_session_id=closed[0].id if closed else None,
        )
        if not result.pbx_fully_applied:
            logger.warning(f"Pause for {extension} applied with PBX failures; queue_members mirror carries the state")
        return result

    async def _open_session(
        self, extension: str, reason: PauseReason, queues: List[str]
    ) -> Tuple[PauseSession, List[PauseSession]]:
        started_at_us = self._now()
        deadline_us = (
            started_at_us + reason.max_duration_minutes * 60 * US_PER_SECOND
            if reason.is_bounded else None
        )
        new_session = PauseSession(
            extension=extension,
            pause_reason_id=reason.id,
            pause_reason_code=reason.code,
            pause_reason_label=reason.label,
            started_at_us=started_at_us,
            queue_name=",".join(queues),
            scheduled_unpause_at_us=deadline_us,
        )
        try:
            return await self._run_db(lambda repos: repos.sessions.open_session(new_session))
        except Exception as e:
            logger.error(f"Failed to write pause session for {extension}: {e}", exc_info=True)
            raise SessionLogWriteError(
                f"Failed to record pause for extension {extension}: {e}",
                {"extension": extension, "pause_reason_code": reason.code},
            ) from e

    # ------------------------------------------------------------------
    # Unpause
    # ------------------------------------------------------------------

    async def unpause(
        self,
        extension: Optional[str],
        queue_name: Optional[str] = None,
        *,
        auto_unpaused: bool = False,
        expected_session_id: Optional[int] = None,
    ) -> UnpauseResult:
        """
        Unpause an agent. Idempotent: with no open session the log is left
        alone and the duration is 0.

        Args:
            extension: Agent extension
            queue_name: Restrict to one queue; defaults to every membership
            auto_unpaused: Mark the closed session as closed by the timer
            expected_session_id: Only act if this session is still the open
                one; used by timers so a stale fire never ends a newer pause

        Returns:
            UnpauseResult with the outcome of every external write

        Raises:
            PauseValidationError: Missing extension
            SessionLogWriteError: The session log could not be written
        """
        extension = self._require_extension(extension)
        queue_name = queue_name.strip() if queue_name and queue_name.strip() else None

        async with self.extension_lock(extension):
            if expected_session_id is not None:
                open_session = await self._run_db(lambda repos: repos.sessions.get_open_session(extension))
                if open_session is None or open_session.id != expected_session_id:
                    logger.info(
                        f"Skipping auto-unpause for {extension}: session {expected_session_id} "
                        f"is no longer the open pause"
                    )
                    return self._noop_unpause(extension, auto_unpaused)

            if self.scheduler is not None:
                self.scheduler.cancel(extension)

            return await self._unpause_locked(extension, queue_name, auto_unpaused)

    async def _unpause_locked(self, extension: str, queue_name: Optional[str], auto_unpaused: bool) -> UnpauseResult:
        interface = self.settings.interface_for(extension)
        queues = await self._resolve_queues(interface, queue_name)

        logger.info(f"Unpausing {extension} on queues {queues} (auto={auto_unpaused})")

        mirror = await self._write_mirror(extension, interface, False, None)
        queue_results = await self._queue_pause_all(extension, interface, queues, False, None)
        reload = await self._reload_queues(extension)

        closed = await self._close_session(extension, auto_unpaused)
        duration = (closed.duration_seconds or 0) if closed else 0
        if closed is None:
            logger.info(f"No open pause session for {extension}; unpause is a no-op for the session log")

        presence = await self._update_presence(extension, AgentPresence.READY, None)

        await publish_agent_unpaused(extension, queues, duration, auto_unpaused)
        await publish_agent_status(extension, AgentStatus.AVAILABLE)

        return UnpauseResult(
            extension=extension,
            queues=queues,
            mirror=mirror,
            queue_results=queue_results,
            reload=reload,
            presence=presence,
            pause_session_id=closed.id if closed else None,
            pause_duration_seconds=duration,
            auto_unpaused=auto_unpaused,
            session_closed=closed is not None,
        )

    async def _close_session(self, extension: str, auto_unpaused: bool) -> Optional[PauseSession]:
        ended_at_us = self._now()

        def _close(repos) -> Optional[PauseSession]:
            open_session = repos.sessions.get_open_session(extension)
            if open_session is None:
                return None
            return repos.sessions.close_session(open_session, ended_at_us, auto_unpaused)

        try:
            return await self._run_db(_close)
        except Exception as e:
            logger.error(f"Failed to close pause session for {extension}: {e}", exc_info=True)
            raise SessionLogWriteError(
                f"Failed to record unpause for extension {extension}: {e}",
                {"extension": extension, "auto_unpaused": auto_unpaused},
            ) from e

    def _noop_unpause(self, extension: str, auto_unpaused: bool) -> UnpauseResult:
        return UnpauseResult(
            extension=extension,
            queues=[],
            mirror=ExternalCallResult(target=MIRROR_TARGET, applied=False, skipped=True),
            queue_results=[],
            reload=ExternalCallResult(target=RELOAD_TARGET, applied=False, skipped=True),
            presence=ExternalCallResult(target=PRESENCE_TARGET, applied=False, skipped=True),
            auto_unpaused=auto_unpaused,
        )

    # ------------------------------------------------------------------
    # Best-effort external writes
    # ------------------------------------------------------------------

    async def _resolve_queues(self, interface: str, queue_name: Optional[str]) -> List[str]:
        """Explicit queue, else the interface's memberships, else the fallback queue."""
        if queue_name:
            return [queue_name]
        try:
            queues = await self._run_db(lambda repos: repos.presence.get_queue_names(interface))
        except Exception as e:
            logger.warning(f"Could not read queue memberships for {interface}: {e}")
            queues = []
        return queues or [self.settings.fallback_queue_name]

    async def _write_mirror(
        self,
        extension: str,
        interface: str,
        paused: bool,
        reason_code: Optional[str],
    ) -> ExternalCallResult:
        """Write the paused state to every queue_members row of the interface."""
        try:
            rows = await self._run_db(
                lambda repos: repos.presence.set_paused(interface, paused, reason_code)
            )
        except Exception as e:
            logger.warning(f"Realtime queue_members update failed for {extension}: {e}")
            return ExternalCallResult(target=MIRROR_TARGET, applied=False, error=str(e))

        if rows == 0:
            logger.debug(f"No queue_members rows for {interface}")
        return ExternalCallResult(target=MIRROR_TARGET, applied=True, response={"rows_updated": rows})

    async def _queue_pause_all(
        self,
        extension: str,
        interface: str,
        queues: List[str],
        paused: bool,
        reason_label: Optional[str],
    ) -> List[QueueActionResult]:
        results = []
        for queue in queues:
            results.append(await self._queue_pause(extension, interface, queue, paused, reason_label))
        return results

    async def _queue_pause(
        self,
        extension: str,
        interface: str,
        queue: str,
        paused: bool,
        reason_label: Optional[str],
    ) -> QueueActionResult:
        target = f"QueuePause:{queue}"
        if self.ami_client is None:
            return QueueActionResult(queue=queue, target=target, applied=False, skipped=True, error="AMI disabled")

        try:
            response = await self.ami_client.execute_action(
                queue_pause_action(queue, interface, paused, reason_label)
            )
        except Exception as e:
            logger.warning(f"AMI QueuePause (paused={paused}) failed for {extension} on queue {queue}: {e}")
            return QueueActionResult(queue=queue, target=target, applied=False, error=str(e))

        return QueueActionResult(queue=queue, target=target, applied=True, response=response)

    async def _reload_queues(self, extension: str) -> ExternalCallResult:
        if self.ami_client is None:
            return ExternalCallResult(target=RELOAD_TARGET, applied=False, skipped=True, error="AMI disabled")

        try:
            response = await self.ami_client.execute_action(command_action(self.settings.queue_reload_command))
        except Exception as e:
            logger.warning(f"AMI '{self.settings.queue_reload_command}' failed after change for {extension}: {e}")
            return ExternalCallResult(target=RELOAD_TARGET, applied=False, error=str(e))

        return ExternalCallResult(target=RELOAD_TARGET, applied=True, response=response)

    async def _update_presence(
        self, extension: str, presence: AgentPresence, reason_code: Optional[str]
    ) -> ExternalCallResult:
        updated_at_us = self._now()
        try:
            found = await self._run_db(
                lambda repos: repos.presence.update_agent_presence(
                    extension, presence.value, reason_code, updated_at_us
                )
            )
        except Exception as e:
            logger.warning(f"Presence update to {presence.value} failed for {extension}: {e}")
            return ExternalCallResult(target=PRESENCE_TARGET, applied=False, error=str(e))

        if not found:
            logger.warning(f"No agent record for extension {extension}; presence not updated")
            return ExternalCallResult(target=PRESENCE_TARGET, applied=False, error="agent record not found")
        return ExternalCallResult(target=PRESENCE_TARGET, applied=True)

    @staticmethod
    def _require_extension(extension: Optional[str]) -> str:
        if not extension or not str(extension).strip():
            raise PauseValidationError("extension is required")
        return str(extension).strip()


_pause_coordinator: Optional[PauseCoordinator] = None


def get_pause_coordinator() -> PauseCoordinator:
    """
    Get the global pause coordinator.

    Raises:
        RuntimeError: If the coordinator has not been initialized at startup
    """
    if _pause_coordinator is None:
        raise RuntimeError("Pause coordinator not initialized")
    return _pause_coordinator


def set_pause_coordinator(coordinator: Optional[PauseCoordinator]) -> None:
    global _pause_coordinator
    _pause_coordinator = coordinator
