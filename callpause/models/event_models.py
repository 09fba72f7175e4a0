"""
Event models for type-safe event publishing.

Pause lifecycle events notify wallboards and softphones that an agent's
state changed. Clients refresh details through the REST API.
"""

import time
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from callpause.models.pause_models import PauseReasonSummary


class BaseEvent(BaseModel):
    """Base class for all events with common fields."""

    type: str = Field(description="Event type identifier")
    timestamp_us: int = Field(
        default_factory=lambda: int(time.time() * 1_000_000),
        description="Event timestamp (microseconds since epoch UTC)",
    )


# ===== Agent pause events (channels: 'agents' and 'agent:{extension}') =====


class AgentPausedEvent(BaseEvent):
    """Agent entered a pause."""

    type: Literal["agent:paused"] = "agent:paused"
    extension: str = Field(description="Agent extension")
    pause_reason: PauseReasonSummary = Field(description="Reason code, label, color and icon")
    start_time_us: int = Field(description="Pause start (microseconds since epoch UTC)")
    queues: List[str] = Field(description="Queues the pause applied to")


class AgentUnpausedEvent(BaseEvent):
    """Agent left a pause, manually or by the auto-unpause timer."""

    type: Literal["agent:unpaused"] = "agent:unpaused"
    extension: str = Field(description="Agent extension")
    queues: List[str] = Field(description="Queues the unpause applied to")
    pause_duration: int = Field(description="Seconds the closed pause lasted (0 if none was open)")
    auto_unpaused: bool = Field(default=False, description="True when triggered by the timer")


class AgentStatusData(BaseModel):
    """Payload of an agent:status event."""

    status: Literal["Paused", "Available"]
    pause_reason: Optional[str] = Field(default=None, description="Reason code while paused")
    pause_reason_label: Optional[str] = None
    timestamp_us: int = Field(default_factory=lambda: int(time.time() * 1_000_000))


class AgentStatusEvent(BaseEvent):
    """Generic presence change used by softphones."""

    type: Literal["agent:status"] = "agent:status"
    extension: str = Field(description="Agent extension")
    data: AgentStatusData
