"""
Repository package for database abstraction layer.

Provides database access patterns for the pause catalog, the pause session
log, the realtime queue mirror and persisted events.
"""

from .base_repository import BaseRepository, DatabaseManager
from .pause_repository import PauseReasonRepository, PauseSessionRepository
from .presence_repository import PresenceRepository

__all__ = [
    "BaseRepository",
    "DatabaseManager",
    "PauseReasonRepository",
    "PauseSessionRepository",
    "PresenceRepository",
]
