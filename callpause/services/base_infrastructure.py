"""Shared database access for pause services."""

import asyncio
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Generator, TypeVar

from sqlmodel import Session

from callpause.repositories.pause_repository import PauseReasonRepository, PauseSessionRepository
from callpause.repositories.presence_repository import PresenceRepository

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class PauseRepositories:
    """Repositories sharing one database session."""

    session: Session
    reasons: PauseReasonRepository
    sessions: PauseSessionRepository
    presence: PresenceRepository


class BasePauseInfra:
    """Session lifecycle and thread offloading for services that touch the database."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        """
        Args:
            session_factory: Returns a new SQLModel session (DatabaseManager.get_session)
        """
        self.session_factory = session_factory

    @contextmanager
    def get_repositories(self) -> Generator[PauseRepositories, None, None]:
        """Open a session, yield repositories bound to it, always close it."""
        session = self.session_factory()
        try:
            yield PauseRepositories(
                session=session,
                reasons=PauseReasonRepository(session),
                sessions=PauseSessionRepository(session),
                presence=PresenceRepository(session),
            )
        except Exception:
            session.rollback()
            raise
        finally:
            try:
                session.close()
            except Exception as e:
                logger.error(f"Error closing database session: {str(e)}")

    async def _run_db(self, operation: Callable[[PauseRepositories], T]) -> T:
        """Run a blocking repository operation in a worker thread."""
        def _call() -> T:
            with self.get_repositories() as repos:
                return operation(repos)

        return await asyncio.to_thread(_call)
