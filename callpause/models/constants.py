"""
Constants for callpause.

This module defines constant values shared between the coordinator,
repositories and API layer.
"""

from enum import Enum
from typing import List


class AgentPresence(Enum):
    """Presence values written to the agents table by this service."""

    READY = "READY"
    PAUSED = "PAUSED"

    @classmethod
    def values(cls) -> List[str]:
        """All presence values as strings."""
        return [presence.value for presence in cls]


class AgentStatus(Enum):
    """Status values carried in agent:status events."""

    PAUSED = "Paused"
    AVAILABLE = "Available"


class PauseEventType(Enum):
    """Event type identifiers for pause lifecycle events."""

    PAUSED = "agent:paused"
    UNPAUSED = "agent:unpaused"
    STATUS = "agent:status"


# AMI "Paused" header values
AMI_PAUSED = "1"
AMI_UNPAUSED = "0"

# queue_members.paused column values (Asterisk realtime uses integers)
QUEUE_MEMBER_PAUSED = 1
QUEUE_MEMBER_UNPAUSED = 0

DEFAULT_REASON_COLOR = "#ff9800"
DEFAULT_REASON_ICON = "pause"

# Paging defaults for history endpoints
DEFAULT_HISTORY_LIMIT = 50
DEFAULT_LOGS_LIMIT = 100
MAX_PAGE_LIMIT = 1000
