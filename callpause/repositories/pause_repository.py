"""
Repositories for the pause reason catalog and the pause session log.

The session log is the durable source of truth for who is paused: a row
with ``ended_at_us`` null is an open pause.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlmodel import Session, col, select

from callpause.models.db_models import PauseReason, PauseSession
from callpause.repositories.base_repository import BaseRepository
from callpause.utils.timestamp import elapsed_seconds

logger = logging.getLogger(__name__)


class PauseReasonRepository(BaseRepository[PauseReason]):
    """Repository for pause reason catalog operations."""

    def __init__(self, session: Session):
        super().__init__(session, PauseReason)

    def get_by_code(self, code: str) -> Optional[PauseReason]:
        """Get a reason by code (case-insensitive; codes are stored uppercase)."""
        statement = select(PauseReason).where(PauseReason.code == code.strip().upper())
        return self.session.exec(statement).first()

    def get_active_by_code(self, code: str) -> Optional[PauseReason]:
        """Get an active reason by code, or None if missing or deactivated."""
        reason = self.get_by_code(code)
        if reason is None or not reason.is_active:
            return None
        return reason

    def list_reasons(self, include_inactive: bool = False) -> List[PauseReason]:
        """List reasons ordered by sort_order then label."""
        statement = select(PauseReason)
        if not include_inactive:
            statement = statement.where(PauseReason.is_active == True)  # noqa: E712
        statement = statement.order_by(col(PauseReason.sort_order).asc(), col(PauseReason.label).asc())
        return list(self.session.exec(statement).all())


class PauseSessionRepository(BaseRepository[PauseSession]):
    """Repository for pause session log operations."""

    def __init__(self, session: Session):
        super().__init__(session, PauseSession)

    def get_open_session(self, extension: str) -> Optional[PauseSession]:
        """Most recent open session for an extension."""
        statement = (
            select(PauseSession)
            .where(PauseSession.extension == extension)
            .where(col(PauseSession.ended_at_us).is_(None))
            .order_by(col(PauseSession.started_at_us).desc(), col(PauseSession.id).desc())
        )
        return self.session.exec(statement).first()

    def list_open_sessions(self) -> List[PauseSession]:
        """All open sessions, longest-paused first."""
        statement = (
            select(PauseSession)
            .where(col(PauseSession.ended_at_us).is_(None))
            .order_by(col(PauseSession.started_at_us).asc())
        )
        return list(self.session.exec(statement).all())

    def list_open_sessions_with_reasons(self) -> List[Tuple[PauseSession, Optional[PauseReason]]]:
        """Open sessions joined to their current reason row (None if the reason was removed)."""
        statement = (
            select(PauseSession, PauseReason)
            .join(PauseReason, PauseSession.pause_reason_id == PauseReason.id, isouter=True)
            .where(col(PauseSession.ended_at_us).is_(None))
            .order_by(col(PauseSession.started_at_us).asc())
        )
        return [(row[0], row[1]) for row in self.session.exec(statement).all()]

    def open_session(
        self,
        new_session: PauseSession,
    ) -> Tuple[PauseSession, List[PauseSession]]:
        """
        Insert a new open session, closing any session still open for the extension.

        Both writes commit in one transaction so an extension never has two
        open sessions.

        Args:
            new_session: Unsaved session with extension, reason snapshot and started_at_us set

        Returns:
            Tuple of (created session, sessions that were closed)
        """
        try:
            statement = (
                select(PauseSession)
                .where(PauseSession.extension == new_session.extension)
                .where(col(PauseSession.ended_at_us).is_(None))
            )
            closed: List[PauseSession] = []
            for prior in self.session.exec(statement).all():
                self._apply_close(prior, new_session.started_at_us, auto_unpaused=False)
                self.session.add(prior)
                closed.append(prior)

            self.session.add(new_session)
            self.session.commit()
            self.session.refresh(new_session)

            if closed:
                logger.info(
                    f"Closed {len(closed)} prior open pause(s) for extension {new_session.extension} "
                    f"when opening session {new_session.id}"
                )
            return new_session, closed
        except Exception as e:
            self.session.rollback()
            logger.error(f"Failed to open pause session for extension {new_session.extension}: {str(e)}")
            raise

    def close_session(self, pause_session: PauseSession, ended_at_us: int, auto_unpaused: bool) -> PauseSession:
        """Close an open session, freezing its duration."""
        self._apply_close(pause_session, ended_at_us, auto_unpaused)
        return self.update(pause_session)

    def set_scheduled_unpause(self, session_id: int, scheduled_unpause_at_us: Optional[int]) -> bool:
        """Record the auto-unpause deadline on a session. Returns False if the session is gone."""
        pause_session = self.get_by_id(session_id)
        if pause_session is None:
            return False
        pause_session.scheduled_unpause_at_us = scheduled_unpause_at_us
        self.update(pause_session)
        return True

    def get_history(
        self,
        extension: str,
        start_us: Optional[int] = None,
        end_us: Optional[int] = None,
        limit: int = 50,
    ) -> List[PauseSession]:
        """Sessions for one extension, newest first."""
        statement = select(PauseSession).where(PauseSession.extension == extension)
        statement = self._apply_time_range(statement, start_us, end_us)
        statement = statement.order_by(col(PauseSession.started_at_us).desc()).limit(limit)
        return list(self.session.exec(statement).all())

    def list_sessions(
        self,
        filters: Dict[str, Any],
        limit: int = 100,
        offset: int = 0,
    ) -> Tuple[List[PauseSession], int, int]:
        """
        Page through the session log.

        Args:
            filters: Optional keys 'extension', 'pause_reason_code', 'start_us', 'end_us'
            limit: Page size
            offset: Rows to skip

        Returns:
            Tuple of (sessions newest first, total matching rows, total closed pause seconds)
        """
        conditions = []
        if filters.get('extension'):
            conditions.append(PauseSession.extension == filters['extension'])
        if filters.get('pause_reason_code'):
            conditions.append(PauseSession.pause_reason_code == filters['pause_reason_code'].upper())
        if filters.get('start_us') is not None:
            conditions.append(col(PauseSession.started_at_us) >= filters['start_us'])
        if filters.get('end_us') is not None:
            conditions.append(col(PauseSession.started_at_us) <= filters['end_us'])

        statement = select(PauseSession)
        count_statement = select(func.count()).select_from(PauseSession)
        sum_statement = select(func.coalesce(func.sum(PauseSession.duration_seconds), 0))
        for condition in conditions:
            statement = statement.where(condition)
            count_statement = count_statement.where(condition)
            sum_statement = sum_statement.where(condition)

        statement = (
            statement.order_by(col(PauseSession.started_at_us).desc(), col(PauseSession.id).desc())
            .offset(offset)
            .limit(limit)
        )

        sessions = list(self.session.exec(statement).all())
        total = self.session.exec(count_statement).one()
        total_seconds = self.session.exec(sum_statement).one()
        return sessions, int(total), int(total_seconds or 0)

    @staticmethod
    def _apply_time_range(statement, start_us: Optional[int], end_us: Optional[int]):
        if start_us is not None:
            statement = statement.where(col(PauseSession.started_at_us) >= start_us)
        if end_us is not None:
            statement = statement.where(col(PauseSession.started_at_us) <= end_us)
        return statement

    @staticmethod
    def _apply_close(pause_session: PauseSession, ended_at_us: int, auto_unpaused: bool) -> None:
        pause_session.ended_at_us = ended_at_us
        pause_session.duration_seconds = elapsed_seconds(pause_session.started_at_us, ended_at_us)
        pause_session.auto_unpaused = auto_unpaused
