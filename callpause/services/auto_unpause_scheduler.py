"""
Auto-unpause scheduler.

Keeps one in-memory one-shot timer per extension paused with a bounded
reason. Timers are not durable: the pause session log is, and restore()
rebuilds the timers from it at startup before any traffic is accepted.
"""

import asyncio
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional, Set

from sqlmodel import Session

from callpause.models.db_models import PauseReason
from callpause.models.pause_models import RestoreSummary, TimerInfo
from callpause.services.base_infrastructure import BasePauseInfra
from callpause.services.exceptions import SchedulerInternalError
from callpause.utils.logger import get_module_logger
from callpause.utils.timestamp import US_PER_SECOND, now_us, us_to_datetime

if TYPE_CHECKING:
    from callpause.services.pause_coordinator import PauseCoordinator

logger = get_module_logger(__name__)


@dataclass
class TimerEntry:
    extension: str
    pause_session_id: int
    scheduled_unpause_at_us: int
    task: asyncio.Task


class AutoUnpauseScheduler(BasePauseInfra):
    """One-shot auto-unpause timers keyed by extension."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        coordinator: "PauseCoordinator",
        now_func: Callable[[], int] = now_us,
        sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            session_factory: Returns a new database session (used by restore)
            coordinator: Performs the actual unpause when a timer fires
            now_func: Clock returning microseconds since epoch
            sleep_func: Coroutine sleeping for the given number of seconds
        """
        super().__init__(session_factory)
        self.coordinator = coordinator
        self._now = now_func
        self._sleep = sleep_func
        self._timers: Dict[str, TimerEntry] = {}
        self._firing: Set[asyncio.Task] = set()

    def arm(
        self,
        extension: str,
        reason: PauseReason,
        pause_session_id: int,
        delay_seconds: Optional[float] = None,
    ) -> Optional[TimerEntry]:
        """
        Schedule the auto-unpause of a pause session, replacing any timer
        already armed for the extension.

        Args:
            extension: Agent extension
            reason: Reason the session was opened with
            pause_session_id: Session the timer belongs to
            delay_seconds: Override the delay (restore uses the remaining time)

        Returns:
            The new entry, or None when the reason has no maximum duration
        """
        if not reason.max_duration_minutes:
            return None

        self.cancel(extension)

        if delay_seconds is None:
            delay_seconds = reason.max_duration_minutes * 60
        delay_seconds = max(0.0, float(delay_seconds))
        scheduled_at_us = self._now() + round(delay_seconds * US_PER_SECOND)

        task = asyncio.create_task(
            self._run_timer(extension, pause_session_id, scheduled_at_us),
            name=f"auto-unpause-{extension}",
        )
        entry = TimerEntry(
            extension=extension,
            pause_session_id=pause_session_id,
            scheduled_unpause_at_us=scheduled_at_us,
            task=task,
        )
        self._timers[extension] = entry

        logger.info(
            f"Auto-unpause armed for {extension} ({reason.code}) in {int(delay_seconds)}s "
            f"at {us_to_datetime(scheduled_at_us):%H:%M:%S} UTC (session {pause_session_id})"
        )
        return entry

    def cancel(self, extension: str) -> bool:
        """Cancel and drop the extension's timer. Returns False if none was armed."""
        entry = self._timers.get(extension)
        if entry is None:
            return False

        # A firing timer has already removed its own entry; never cancel ourselves
        if entry.task is asyncio.current_task():
            return False

        del self._timers[extension]
        entry.task.cancel()
        logger.debug(f"Auto-unpause timer cancelled for {extension} (session {entry.pause_session_id})")
        return True

    async def restore(self) -> RestoreSummary:
        """
        Rebuild timers from open sessions after a restart.

        Sessions whose maximum duration already elapsed are auto-unpaused
        immediately; the rest are armed for exactly their remaining time.
        """
        summary = RestoreSummary()
        open_sessions = await self._run_db(lambda repos: repos.sessions.list_open_sessions_with_reasons())
        current_us = self._now()

        for pause_session, reason in open_sessions:
            if reason is None or not reason.max_duration_minutes:
                summary.skipped += 1
                continue

            deadline_us = pause_session.started_at_us + reason.max_duration_minutes * 60 * US_PER_SECOND
            remaining_us = deadline_us - current_us

            try:
                if remaining_us <= 0:
                    logger.info(
                        f"Pause of {pause_session.extension} ({reason.code}) expired during downtime; auto-unpausing"
                    )
                    await self.coordinator.unpause(
                        pause_session.extension,
                        auto_unpaused=True,
                        expected_session_id=pause_session.id,
                    )
                    summary.expired_unpaused += 1
                    continue

                if pause_session.scheduled_unpause_at_us != deadline_us:
                    await self._run_db(
                        lambda repos, sid=pause_session.id: repos.sessions.set_scheduled_unpause(sid, deadline_us)
                    )
                self.arm(
                    pause_session.extension,
                    reason,
                    pause_session.id,
                    delay_seconds=remaining_us / US_PER_SECOND,
                )
                summary.restored += 1
            except Exception as e:
                summary.failed += 1
                logger.error(
                    f"Failed to restore auto-unpause for {pause_session.extension} "
                    f"(session {pause_session.id}): {e}",
                    exc_info=True,
                )

        logger.info(
            f"Auto-unpause restore complete: {summary.restored} rearmed, "
            f"{summary.expired_unpaused} expired, {summary.skipped} unbounded, {summary.failed} failed"
        )
        return summary

    def get_remaining_seconds(self, extension: str) -> Optional[int]:
        entry = self._timers.get(extension)
        if entry is None:
            return None
        return max(0, math.ceil((entry.scheduled_unpause_at_us - self._now()) / US_PER_SECOND))

    def get_active_timers(self) -> List[TimerInfo]:
        current_us = self._now()
        return [
            TimerInfo(
                extension=entry.extension,
                pause_session_id=entry.pause_session_id,
                scheduled_unpause_at_us=entry.scheduled_unpause_at_us,
                remaining_seconds=max(0, math.ceil((entry.scheduled_unpause_at_us - current_us) / US_PER_SECOND)),
            )
            for entry in sorted(self._timers.values(), key=lambda e: e.scheduled_unpause_at_us)
        ]

    def has_timer(self, extension: str) -> bool:
        return extension in self._timers

    async def shutdown(self) -> None:
        """Cancel every timer without firing it."""
        entries, self._timers = list(self._timers.values()), {}
        tasks = [entry.task for entry in entries] + list(self._firing)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Auto-unpause scheduler stopped ({len(entries)} timer(s) dropped)")

    async def _run_timer(self, extension: str, pause_session_id: int, deadline_us: int) -> None:
        # Sleep against the absolute deadline; the task may start late on a busy loop
        remaining_us = deadline_us - self._now()
        while remaining_us > 0:
            await self._sleep(remaining_us / US_PER_SECOND)
            remaining_us = deadline_us - self._now()

        entry = self._timers.get(extension)
        if entry is not None and entry.pause_session_id == pause_session_id:
            del self._timers[extension]

        current = asyncio.current_task()
        self._firing.add(current)
        try:
            await self._fire(extension, pause_session_id)
        finally:
            self._firing.discard(current)

    async def _fire(self, extension: str, pause_session_id: int) -> None:
        logger.info(f"Auto-unpause firing for {extension} (session {pause_session_id})")
        try:
            await self.coordinator.unpause(
                extension,
                auto_unpaused=True,
                expected_session_id=pause_session_id,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = SchedulerInternalError(
                f"Auto-unpause failed for {extension}: {e}",
                {"extension": extension, "pause_session_id": pause_session_id},
            )
            logger.error(f"{error} ({error.context})", exc_info=True)


_auto_unpause_scheduler: Optional[AutoUnpauseScheduler] = None


def get_auto_unpause_scheduler() -> AutoUnpauseScheduler:
    """
    Get the global auto-unpause scheduler.

    Raises:
        RuntimeError: If the scheduler has not been initialized at startup
    """
    if _auto_unpause_scheduler is None:
        raise RuntimeError("Auto-unpause scheduler not initialized")
    return _auto_unpause_scheduler


def set_auto_unpause_scheduler(scheduler: Optional[AutoUnpauseScheduler]) -> None:
    global _auto_unpause_scheduler
    _auto_unpause_scheduler = scheduler
