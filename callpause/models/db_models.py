"""
Database models for pause coordination.

Defines SQLModel table classes for the pause reason catalog, the pause
session log, the Asterisk realtime queue member table, the agent presence
row and the persisted event stream. Timestamps owned by this service are
Unix timestamps in microseconds since epoch.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, func
from sqlalchemy.dialects.postgresql import BIGINT
from sqlmodel import Column, Field, Index, SQLModel

from callpause.models.constants import DEFAULT_REASON_COLOR, DEFAULT_REASON_ICON
from callpause.utils.timestamp import now_us


class PauseReason(SQLModel, table=True):
    """
    A named pause category with optional maximum duration.

    Reasons are never hard-deleted; pause sessions keep a snapshot of the
    code and label so history stays readable after a reason is edited or
    deactivated.
    """

    __tablename__ = "pause_reasons"

    __table_args__ = (
        Index('ix_pause_reasons_active_sort', 'is_active', 'sort_order'),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    code: str = Field(
        max_length=50,
        unique=True,
        index=True,
        description="Unique uppercase reason code (e.g., 'BREAK', 'LUNCH')"
    )

    label: str = Field(max_length=100, description="Display label")

    description: Optional[str] = Field(default=None, description="Longer description for supervisors")

    color: str = Field(default=DEFAULT_REASON_COLOR, max_length=20, description="Hex color for UI display")

    icon: str = Field(default=DEFAULT_REASON_ICON, max_length=50, description="Material icon name")

    max_duration_minutes: Optional[int] = Field(
        default=None,
        description="Auto-unpause after this many minutes (null or 0 = never)"
    )

    requires_approval: bool = Field(default=False, description="Supervisor approval flag (informational)")

    is_active: bool = Field(default=True, description="Inactive reasons cannot be used for new pauses")

    sort_order: int = Field(default=0, description="Display order in reason pickers")

    created_at_us: int = Field(
        default_factory=now_us,
        sa_column=Column[Any](BIGINT, nullable=False),
        description="Creation timestamp (microseconds since epoch UTC)"
    )

    updated_at_us: int = Field(
        default_factory=now_us,
        sa_column=Column[Any](BIGINT, nullable=False),
        description="Last update timestamp (microseconds since epoch UTC)"
    )

    @property
    def is_bounded(self) -> bool:
        """True when pauses with this reason expire automatically."""
        return bool(self.max_duration_minutes)


class PauseSession(SQLModel, table=True):
    """
    One pause interval for one extension.

    A row with ``ended_at_us`` null is the agent's currently open pause; at
    most one such row exists per extension.
    """

    __tablename__ = "pause_sessions"

    __table_args__ = (
        # Open-session lookup by extension
        Index('ix_pause_sessions_extension_ended', 'extension', 'ended_at_us'),
        Index('ix_pause_sessions_started_at', 'started_at_us'),
    )

    id: Optional[int] = Field(default=None, primary_key=True)

    extension: str = Field(max_length=20, index=True, description="Agent extension")

    pause_reason_id: Optional[int] = Field(
        default=None,
        sa_column=Column[Any](Integer, ForeignKey("pause_reasons.id"), nullable=True),
        description="Reason used for this pause"
    )

    pause_reason_code: str = Field(max_length=50, description="Reason code snapshot at pause time")

    pause_reason_label: Optional[str] = Field(default=None, max_length=100, description="Reason label snapshot")

    started_at_us: int = Field(
        default_factory=now_us,
        sa_column=Column[Any](BIGINT, nullable=False),
        description="Pause start (microseconds since epoch UTC)"
    )

    ended_at_us: Optional[int] = Field(
        default=None,
        sa_column=Column[Any](BIGINT, nullable=True),
        description="Pause end (null while the agent is still paused)"
    )

    duration_seconds: Optional[int] = Field(
        default=None,
        description="Whole seconds paused, frozen when the session closes"
    )

    queue_name: Optional[str] = Field(default=None, description="Comma-joined queues the pause applied to")

    auto_unpaused: bool = Field(default=False, description="True when closed by the auto-unpause timer")

    scheduled_unpause_at_us: Optional[int] = Field(
        default=None,
        sa_column=Column[Any](BIGINT, nullable=True),
        description="Auto-unpause deadline for bounded reasons"
    )

    @property
    def is_open(self) -> bool:
        return self.ended_at_us is None


class QueueMember(SQLModel, table=True):
    """
    Asterisk realtime queue member row.

    Asterisk reads this table when routing calls; ``paused`` is the integer
    flag Asterisk expects (1 paused, 0 available).
    """

    __tablename__ = "queue_members"

    __table_args__ = (
        Index('ix_queue_members_interface', 'interface'),
        Index('ix_queue_members_queue_interface', 'queue_name', 'interface', unique=True),
    )

    uniqueid: Optional[int] = Field(default=None, primary_key=True)

    queue_name: str = Field(max_length=128)

    interface: str = Field(max_length=128, description="Channel interface, e.g. 'PJSIP/1001'")

    membername: Optional[str] = Field(default=None, max_length=128)

    state_interface: Optional[str] = Field(default=None, max_length=128)

    penalty: Optional[int] = Field(default=0)

    paused: int = Field(default=0)

    paused_reason: Optional[str] = Field(default=None, max_length=80)


class Agent(SQLModel, table=True):
    """
    Agent presence record.

    Rows are provisioned by the user directory; this service only updates
    the presence columns.
    """

    __tablename__ = "agents"

    extension: str = Field(primary_key=True, max_length=20)

    name: Optional[str] = Field(default=None, max_length=255)

    presence: str = Field(default="READY", max_length=20)

    pause_reason: Optional[str] = Field(default=None, max_length=50)

    last_presence_update_us: Optional[int] = Field(
        default=None,
        sa_column=Column[Any](BIGINT, nullable=True),
    )


class Event(SQLModel, table=True):
    """
    Persisted pause lifecycle event.

    Stores events for PostgreSQL LISTEN/NOTIFY delivery and lets dashboards
    catch up after reconnecting by reading events after a known ID.
    """

    __tablename__ = "events"

    __table_args__ = (
        Index("idx_events_created_at", "created_at"),
        Index("idx_events_channel_id", "channel", "id"),
    )

    id: Optional[int] = Field(
        default=None,
        sa_column=Column[Any](Integer, primary_key=True, autoincrement=True),
        description="Auto-incrementing event ID for ordering and catchup",
    )

    channel: str = Field(
        max_length=100,
        index=True,
        description="Event channel (e.g., 'agents', 'agent:1001')",
    )

    payload: dict = Field(
        sa_column=Column[Any](JSON),
        description="Event data as JSON (type, payload fields, timestamp_us)",
    )

    created_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column[Any](DateTime, nullable=False, server_default=func.now()),
        description="Event creation timestamp (for cleanup and ordering)",
    )
