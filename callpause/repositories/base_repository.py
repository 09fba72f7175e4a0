"""
Base repository and database manager for the synchronous session log.

Repositories over the pause catalog, the pause session log and the realtime
queue mirror share one unit-of-work rule: every write commits immediately
and rolls back on failure, so a pause or unpause step either lands or raises.
"""

import logging
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy import Engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker
from sqlmodel import Session, SQLModel

from callpause.database.init_db import create_database_engine

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """Commit-per-call persistence for one pause table."""

    def __init__(self, session: Session, model_class: type[ModelType]):
        self.session = session
        self.model_class = model_class

    def create(self, obj: ModelType) -> ModelType:
        return self._save(obj, "create")

    def update(self, obj: ModelType) -> ModelType:
        return self._save(obj, "update")

    def get_by_id(self, id_value: Any) -> Optional[ModelType]:
        """Primary key lookup (reason id, session id, queue member uniqueid, extension)."""
        return self.session.get(self.model_class, id_value)

    def _save(self, obj: ModelType, action: str) -> ModelType:
        table = self.model_class.__tablename__
        try:
            self.session.add(obj)
            self.session.commit()
            self.session.refresh(obj)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Failed to {action} {table} row: {e}")
            raise
        logger.debug(f"{action.capitalize()}d {table} row {obj!r:.80}")
        return obj


class DatabaseManager:
    """
    Owns the sync engine and the session factory handed to the pause services.

    In-memory SQLite databases are not reachable by Alembic (each connection
    gets a fresh database), so their schema is created from the models.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine: Optional[Engine] = None
        self.session_factory: Optional[sessionmaker] = None

    @property
    def is_in_memory(self) -> bool:
        return ":memory:" in self.database_url

    def initialize(self) -> None:
        """
        Create the engine and session factory.

        Raises:
            Exception: If the engine cannot be created or the in-memory schema fails
        """
        try:
            self.engine = create_database_engine(self.database_url)
            self.session_factory = sessionmaker(bind=self.engine, class_=Session, expire_on_commit=False)
            if self.is_in_memory:
                SQLModel.metadata.create_all(self.engine)
        except Exception as e:
            logger.error(f"Failed to initialize session log database: {e}")
            raise

        safe_url = make_url(self.database_url).render_as_string(hide_password=True)
        logger.info(f"Session log database ready at {safe_url}" + (" (in-memory schema)" if self.is_in_memory else ""))

    def get_session(self) -> Session:
        if not self.session_factory:
            raise RuntimeError("Database not initialized")
        return self.session_factory()

    def close(self) -> None:
        if self.engine:
            self.engine.dispose()
            self.engine = None
            logger.info("Database connections closed")
