"""
Pydantic models for pause coordination results, queries and API payloads.

Uses Unix timestamps (microseconds since epoch) throughout for consistency
with the database layer.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from callpause.models.constants import DEFAULT_REASON_COLOR, DEFAULT_REASON_ICON


# ===== Pause reason catalog =====


class PauseReasonDefinition(BaseModel):
    """Pause reason definition as loaded from built-ins or YAML, and accepted on create."""

    code: str = Field(min_length=1, max_length=50, description="Reason code (stored uppercase)")
    label: str = Field(min_length=1, max_length=100, description="Display label")
    description: Optional[str] = Field(default=None)
    color: str = Field(default=DEFAULT_REASON_COLOR)
    icon: str = Field(default=DEFAULT_REASON_ICON)
    max_duration_minutes: Optional[int] = Field(default=None, ge=0, description="Null or 0 = never expires")
    requires_approval: bool = Field(default=False)
    is_active: bool = Field(default=True)
    sort_order: int = Field(default=0)

    @field_validator('code', mode='before')
    @classmethod
    def normalize_code(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v


class PauseReasonUpdate(BaseModel):
    """Partial update for a pause reason; unset fields are left unchanged."""

    label: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = None
    icon: Optional[str] = None
    max_duration_minutes: Optional[int] = Field(default=None, ge=0)
    requires_approval: Optional[bool] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None


class PauseReasonResponse(PauseReasonDefinition):
    """Pause reason as returned by the API."""

    id: int
    created_at_us: int
    updated_at_us: int


class PauseReasonSummary(BaseModel):
    """Reason fields carried in results and events."""

    code: str
    label: str
    color: str = DEFAULT_REASON_COLOR
    icon: str = DEFAULT_REASON_ICON


# ===== External call outcomes =====


class ExternalCallResult(BaseModel):
    """
    Outcome of one best-effort external write (mirror row, AMI action, presence).

    ``applied`` is False when the call failed; the failure text is kept in
    ``error`` and never raised to the caller.
    """

    target: str = Field(description="What was written, e.g. 'queue_members', 'QueuePause:sales', 'reload'")
    applied: bool
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = Field(default=None, description="Raw AMI response when available")
    skipped: bool = Field(default=False, description="True when the call was not attempted (e.g. AMI disabled)")


class QueueActionResult(ExternalCallResult):
    """Per-queue AMI QueuePause outcome."""

    queue: str


class PauseResult(BaseModel):
    """Result of a pause operation."""

    extension: str
    pause_reason: PauseReasonSummary
    pause_session_id: int
    started_at_us: int
    queues: List[str]
    mirror: ExternalCallResult
    queue_results: List[QueueActionResult]
    reload: ExternalCallResult
    presence: ExternalCallResult
    scheduled_unpause_at_us: Optional[int] = None
    replaced_session_id: Optional[int] = Field(
        default=None,
        description="Previously open session closed by this pause"
    )

    @property
    def pbx_fully_applied(self) -> bool:
        return self.reload.applied and all(r.applied for r in self.queue_results)


class UnpauseResult(BaseModel):
    """Result of an unpause operation."""

    extension: str
    queues: List[str]
    mirror: ExternalCallResult
    queue_results: List[QueueActionResult]
    reload: ExternalCallResult
    presence: ExternalCallResult
    pause_session_id: Optional[int] = None
    pause_duration_seconds: int = 0
    auto_unpaused: bool = False
    session_closed: bool = False

    @property
    def pbx_fully_applied(self) -> bool:
        return self.reload.applied and all(r.applied for r in self.queue_results)


# ===== Scheduler =====


class TimerInfo(BaseModel):
    """Live auto-unpause timer."""

    extension: str
    pause_session_id: int
    scheduled_unpause_at_us: int
    remaining_seconds: int


class RestoreSummary(BaseModel):
    """Counts from startup timer recovery."""

    restored: int = 0
    expired_unpaused: int = 0
    skipped: int = 0
    failed: int = 0


# ===== Queries =====


class PauseSessionRecord(BaseModel):
    """Pause session as returned by history and status queries."""

    id: int
    extension: str
    pause_reason_id: Optional[int] = None
    pause_reason_code: str
    pause_reason_label: Optional[str] = None
    started_at_us: int
    ended_at_us: Optional[int] = None
    duration_seconds: Optional[int] = None
    duration_formatted: Optional[str] = None
    queue_name: Optional[str] = None
    auto_unpaused: bool = False
    scheduled_unpause_at_us: Optional[int] = None


class QueueMemberState(BaseModel):
    """Realtime mirror row for one queue membership."""

    queue_name: str
    interface: str
    paused: bool
    paused_reason: Optional[str] = None


class AgentPauseStatus(BaseModel):
    """Current pause state of one extension."""

    extension: str
    is_paused: bool
    pause_session: Optional[PauseSessionRecord] = None
    pause_reason: Optional[PauseReasonSummary] = None
    pause_duration_seconds: int = 0
    pause_duration_formatted: str = "0:00"
    remaining_seconds: Optional[int] = None
    presence: Optional[str] = None
    queue_memberships: List[QueueMemberState] = Field(default_factory=list)


class AgentPauseHistory(BaseModel):
    """Pause history for one extension."""

    extension: str
    sessions: List[PauseSessionRecord]
    total_pause_seconds: int
    total_pause_formatted: str


class PausedAgent(BaseModel):
    """Entry in the currently-paused agents list."""

    extension: str
    pause_session: PauseSessionRecord
    current_duration_seconds: int
    current_duration_formatted: str
    remaining_seconds: Optional[int] = None


class PaginatedPauseLogs(BaseModel):
    """Pause session audit log page."""

    logs: List[PauseSessionRecord]
    total: int
    limit: int
    offset: int
    has_more: bool
    total_pause_seconds: int
    total_pause_formatted: str


class PauseDebugInfo(BaseModel):
    """Side-by-side database and PBX view of one extension."""

    extension: str
    interface: str
    queue_members: List[QueueMemberState]
    open_session: Optional[PauseSessionRecord] = None
    presence: Optional[str] = None
    timer: Optional[TimerInfo] = None
    ami_queue_status: Optional[List[Dict[str, Any]]] = None
    ami_error: Optional[str] = None


# ===== Requests =====


class PauseRequest(BaseModel):
    """Body for POST /api/v1/pause/agent."""

    extension: Optional[str] = Field(default=None, description="Agent extension")
    pause_reason_code: Optional[str] = Field(default=None, description="Pause reason code (case-insensitive)")
    queue_name: Optional[str] = Field(default=None, description="Restrict the pause to one queue")


class UnpauseRequest(BaseModel):
    """Body for POST /api/v1/pause/agent/unpause."""

    extension: Optional[str] = Field(default=None, description="Agent extension")
    queue_name: Optional[str] = Field(default=None, description="Restrict the unpause to one queue")
