"""
ExpiredPauseSweeper - safety net for bounded pauses without a live timer.

Timers live in memory; a timer lost to a crashed task or an extension paused
by another instance leaves a bounded session open past its deadline. The
sweeper periodically finds such sessions and runs the normal auto-unpause
path for them.
"""

import asyncio
from typing import TYPE_CHECKING, Callable, Optional

from callpause.utils.logger import get_module_logger
from callpause.utils.timestamp import now_us

if TYPE_CHECKING:
    from callpause.services.auto_unpause_scheduler import AutoUnpauseScheduler
    from callpause.services.pause_coordinator import PauseCoordinator

logger = get_module_logger(__name__)

ERROR_RETRY_SECONDS = 30


class ExpiredPauseSweeper:
    """Background worker auto-unpausing overdue bounded sessions."""

    def __init__(
        self,
        coordinator: "PauseCoordinator",
        scheduler: "AutoUnpauseScheduler",
        interval_seconds: float,
        now_func: Callable[[], int] = now_us,
    ):
        """
        Args:
            coordinator: Runs the unpause
            scheduler: Consulted so sessions with a live timer are left to it
            interval_seconds: Seconds between sweeps
            now_func: Clock returning microseconds since epoch
        """
        self.coordinator = coordinator
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self._now = now_func

        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._running = False

    async def start(self) -> None:
        if self._running:
            logger.warning("ExpiredPauseSweeper already running")
            return

        self._running = True
        self._stop_event.clear()
        self._worker_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"ExpiredPauseSweeper started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        if not self._running:
            return

        self._stop_event.set()
        if self._worker_task:
            try:
                await asyncio.wait_for(self._worker_task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("ExpiredPauseSweeper did not stop gracefully, cancelling")
                self._worker_task.cancel()
                try:
                    await self._worker_task
                except asyncio.CancelledError:
                    pass
            self._worker_task = None

        self._running = False
        logger.info("ExpiredPauseSweeper stopped")

    async def sweep(self) -> int:
        """
        Auto-unpause every open bounded session past its deadline that has
        no armed timer.

        Returns:
            Number of sessions unpaused
        """
        current_us = self._now()
        open_sessions = await self.coordinator._run_db(
            lambda repos: repos.sessions.list_open_sessions()
        )

        unpaused = 0
        for pause_session in open_sessions:
            deadline_us = pause_session.scheduled_unpause_at_us
            if deadline_us is None or deadline_us > current_us:
                continue
            if self.scheduler.has_timer(pause_session.extension):
                continue

            logger.warning(
                f"Pause session {pause_session.id} for {pause_session.extension} is overdue "
                f"with no timer; auto-unpausing"
            )
            try:
                result = await self.coordinator.unpause(
                    pause_session.extension,
                    auto_unpaused=True,
                    expected_session_id=pause_session.id,
                )
            except Exception as e:
                # Left open; the next sweep retries it
                logger.error(
                    f"Failed to auto-unpause overdue session {pause_session.id} "
                    f"for {pause_session.extension}: {e}",
                    exc_info=True,
                )
                continue
            if result.session_closed:
                unpaused += 1

        if unpaused:
            logger.info(f"Swept {unpaused} overdue pause session(s)")
        return unpaused

    async def _sweep_loop(self) -> None:
        while not self._stop_event.is_set():
            delay = self.interval_seconds
            try:
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in expired pause sweep: {e}", exc_info=True)
                delay = ERROR_RETRY_SECONDS

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
