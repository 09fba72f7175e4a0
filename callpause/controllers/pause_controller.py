"""
Pause Controller

REST API for the pause reason catalog, agent pause/unpause, pause status and
history, the audit log, live auto-unpause timers and per-extension
diagnostics. Timestamps are Unix microseconds since epoch (UTC).
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from callpause.config.settings import Settings, get_settings
from callpause.database.init_db import get_async_session_factory
from callpause.integrations.ami.actions import queue_status_action
from callpause.models.api_models import ErrorResponse
from callpause.models.constants import DEFAULT_HISTORY_LIMIT, DEFAULT_LOGS_LIMIT, MAX_PAGE_LIMIT
from callpause.models.pause_models import (
    AgentPauseHistory,
    AgentPauseStatus,
    PaginatedPauseLogs,
    PauseDebugInfo,
    PausedAgent,
    PauseReasonDefinition,
    PauseReasonResponse,
    PauseReasonUpdate,
    PauseRequest,
    PauseResult,
    TimerInfo,
    UnpauseRequest,
    UnpauseResult,
)
from callpause.repositories.event_repository import EventRepository
from callpause.services.auto_unpause_scheduler import AutoUnpauseScheduler, get_auto_unpause_scheduler
from callpause.services.events.channels import EventChannel
from callpause.services.exceptions import (
    PauseError,
    PauseReasonConflictError,
    PauseReasonNotFoundError,
    PauseValidationError,
)
from callpause.services.pause_coordinator import PauseCoordinator, get_pause_coordinator
from callpause.services.pause_log_service import PauseLogService, get_pause_log_service
from callpause.services.pause_reason_service import PauseReasonService, get_pause_reason_service
from callpause.utils.logger import get_module_logger

logger = get_module_logger(__name__)

router = APIRouter(prefix="/api/v1/pause", tags=["pause"])

ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Bad request - invalid parameters"},
    500: {"model": ErrorResponse, "description": "Internal server error"},
    503: {"model": ErrorResponse, "description": "Service not initialized"},
}


def _status_for(error: PauseError) -> int:
    if isinstance(error, PauseValidationError):
        return 400
    if isinstance(error, PauseReasonNotFoundError):
        return 404
    if isinstance(error, PauseReasonConflictError):
        return 409
    return 500


def _raise_http(error: Exception, action: str) -> NoReturn:
    """Translate a service-layer exception into an HTTPException."""
    if isinstance(error, HTTPException):
        raise error
    if isinstance(error, PauseError):
        status_code = _status_for(error)
        if status_code >= 500:
            logger.error(f"Failed to {action}: {error}")
        raise HTTPException(status_code=status_code, detail=error.to_dict()) from error
    if isinstance(error, RuntimeError):
        raise HTTPException(status_code=503, detail=f"Pause service unavailable: {error}") from error

    logger.error(f"Failed to {action}: {error}", exc_info=True)
    raise HTTPException(status_code=500, detail=f"Failed to {action}: {error}") from error


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _date_to_us(value: date, end_of_day: bool = False) -> int:
    moment = datetime.combine(value, time.max if end_of_day else time.min, tzinfo=timezone.utc)
    return (moment - EPOCH) // timedelta(microseconds=1)


def _resolve_range(
    start_date: Optional[date],
    end_date: Optional[date],
    start_date_us: Optional[int],
    end_date_us: Optional[int],
) -> Dict[str, int]:
    """Merge calendar-date and microsecond filters; end dates cover the whole day."""
    start_us = start_date_us if start_date_us is not None else (
        _date_to_us(start_date) if start_date else None
    )
    end_us = end_date_us if end_date_us is not None else (
        _date_to_us(end_date, end_of_day=True) if end_date else None
    )
    if start_us is not None and end_us is not None and start_us > end_us:
        raise HTTPException(status_code=400, detail="start date must not be after end date")

    time_range: Dict[str, int] = {}
    if start_us is not None:
        time_range["start_us"] = start_us
    if end_us is not None:
        time_range["end_us"] = end_us
    return time_range


# ===== Pause reasons =====


@router.get(
    "/reasons",
    response_model=List[PauseReasonResponse],
    responses=ERROR_RESPONSES,
    summary="List Pause Reasons",
)
async def list_reasons(
    include_inactive: bool = Query(False, description="Include deactivated reasons"),
    reason_service: PauseReasonService = Depends(get_pause_reason_service),
) -> List[PauseReasonResponse]:
    """Pause reasons ordered by sort_order, then label."""
    try:
        return reason_service.list_reasons(include_inactive)
    except Exception as e:
        _raise_http(e, "list pause reasons")


@router.post(
    "/reasons",
    response_model=PauseReasonResponse,
    status_code=201,
    responses={**ERROR_RESPONSES, 409: {"model": ErrorResponse, "description": "Code already exists"}},
    summary="Create Pause Reason",
)
async def create_reason(
    definition: PauseReasonDefinition,
    reason_service: PauseReasonService = Depends(get_pause_reason_service),
) -> PauseReasonResponse:
    try:
        return reason_service.create_reason(definition)
    except Exception as e:
        _raise_http(e, "create pause reason")


@router.put(
    "/reasons/{reason_id}",
    response_model=PauseReasonResponse,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse, "description": "Reason not found"}},
    summary="Update Pause Reason",
)
async def update_reason(
    changes: PauseReasonUpdate,
    reason_id: int = Path(..., description="Pause reason ID"),
    reason_service: PauseReasonService = Depends(get_pause_reason_service),
) -> PauseReasonResponse:
    try:
        return reason_service.update_reason(reason_id, changes)
    except Exception as e:
        _raise_http(e, "update pause reason")


@router.delete(
    "/reasons/{reason_id}",
    response_model=PauseReasonResponse,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse, "description": "Reason not found"}},
    summary="Deactivate Pause Reason",
)
async def deactivate_reason(
    reason_id: int = Path(..., description="Pause reason ID"),
    reason_service: PauseReasonService = Depends(get_pause_reason_service),
) -> PauseReasonResponse:
    """Soft delete: the reason disappears from the default list but stays on past sessions."""
    try:
        return reason_service.deactivate_reason(reason_id)
    except Exception as e:
        _raise_http(e, "deactivate pause reason")


# ===== Pause / unpause =====


@router.post(
    "/agent",
    response_model=PauseResult,
    responses=ERROR_RESPONSES,
    summary="Pause Agent",
    description="""
    Pause an agent on every queue it belongs to (or one queue).

    Realtime mirror, PBX and presence failures do not fail the request;
    they are reported per target in the response. A failed session log
    write returns 500 with error `session_log_write_failed`.
    """,
)
async def pause_agent(
    request: PauseRequest,
    coordinator: PauseCoordinator = Depends(get_pause_coordinator),
) -> PauseResult:
    try:
        return await coordinator.pause(request.extension, request.pause_reason_code, request.queue_name)
    except Exception as e:
        _raise_http(e, "pause agent")


@router.post(
    "/agent/unpause",
    response_model=UnpauseResult,
    responses=ERROR_RESPONSES,
    summary="Unpause Agent",
    description="Unpause an agent. Unpausing an agent that is not paused succeeds with duration 0.",
)
async def unpause_agent(
    request: UnpauseRequest,
    coordinator: PauseCoordinator = Depends(get_pause_coordinator),
) -> UnpauseResult:
    try:
        return await coordinator.unpause(request.extension, request.queue_name)
    except Exception as e:
        _raise_http(e, "unpause agent")


# ===== Queries =====


@router.get(
    "/agent/{extension}/status",
    response_model=AgentPauseStatus,
    responses=ERROR_RESPONSES,
    summary="Agent Pause Status",
)
async def get_agent_status(
    extension: str = Path(..., description="Agent extension"),
    log_service: PauseLogService = Depends(get_pause_log_service),
) -> AgentPauseStatus:
    try:
        return log_service.get_agent_status(extension)
    except Exception as e:
        _raise_http(e, "get agent status")


@router.get(
    "/agent/{extension}/history",
    response_model=AgentPauseHistory,
    responses=ERROR_RESPONSES,
    summary="Agent Pause History",
)
async def get_agent_history(
    extension: str = Path(..., description="Agent extension"),
    start_date: Optional[date] = Query(None, description="First day (YYYY-MM-DD, UTC)"),
    end_date: Optional[date] = Query(None, description="Last day, inclusive (YYYY-MM-DD, UTC)"),
    start_date_us: Optional[int] = Query(None, description="Sessions started at or after (microseconds)"),
    end_date_us: Optional[int] = Query(None, description="Sessions started at or before (microseconds)"),
    limit: int = Query(DEFAULT_HISTORY_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    log_service: PauseLogService = Depends(get_pause_log_service),
) -> AgentPauseHistory:
    try:
        time_range = _resolve_range(start_date, end_date, start_date_us, end_date_us)
        return log_service.get_agent_history(
            extension, time_range.get("start_us"), time_range.get("end_us"), limit
        )
    except Exception as e:
        _raise_http(e, "get agent pause history")


@router.get(
    "/agents/paused",
    response_model=List[PausedAgent],
    responses=ERROR_RESPONSES,
    summary="Currently Paused Agents",
)
async def list_paused_agents(
    log_service: PauseLogService = Depends(get_pause_log_service),
) -> List[PausedAgent]:
    try:
        return log_service.list_paused_agents()
    except Exception as e:
        _raise_http(e, "list paused agents")


@router.get(
    "/logs",
    response_model=PaginatedPauseLogs,
    responses=ERROR_RESPONSES,
    summary="Pause Session Log",
)
async def list_logs(
    extension: Optional[str] = Query(None, description="Filter by extension"),
    pause_reason_code: Optional[str] = Query(None, description="Filter by reason code"),
    start_date: Optional[date] = Query(None, description="First day (YYYY-MM-DD, UTC)"),
    end_date: Optional[date] = Query(None, description="Last day, inclusive (YYYY-MM-DD, UTC)"),
    start_date_us: Optional[int] = Query(None),
    end_date_us: Optional[int] = Query(None),
    limit: int = Query(DEFAULT_LOGS_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
    log_service: PauseLogService = Depends(get_pause_log_service),
) -> PaginatedPauseLogs:
    try:
        filters: Dict[str, Any] = _resolve_range(start_date, end_date, start_date_us, end_date_us)
        if extension:
            filters["extension"] = extension
        if pause_reason_code:
            filters["pause_reason_code"] = pause_reason_code
        return log_service.list_logs(filters, limit, offset)
    except Exception as e:
        _raise_http(e, "list pause logs")


@router.get(
    "/timers",
    response_model=List[TimerInfo],
    responses=ERROR_RESPONSES,
    summary="Active Auto-Unpause Timers",
)
async def list_timers(
    scheduler: AutoUnpauseScheduler = Depends(get_auto_unpause_scheduler),
) -> List[TimerInfo]:
    return scheduler.get_active_timers()


@router.get(
    "/events",
    responses=ERROR_RESPONSES,
    summary="Agent Event Catchup",
    description="Events published after `after_id` on a channel, oldest first.",
)
async def get_events(
    channel: str = Query(EventChannel.AGENTS, description="'agents' or 'agent:<extension>'"),
    after_id: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=MAX_PAGE_LIMIT),
) -> List[Dict[str, Any]]:
    try:
        async with get_async_session_factory()() as session:
            events = await EventRepository(session).get_events_after(channel, after_id, limit)
        return [{"id": event.id, **event.payload} for event in events]
    except Exception as e:
        _raise_http(e, "get events")


@router.get(
    "/debug/{extension}",
    response_model=PauseDebugInfo,
    responses=ERROR_RESPONSES,
    summary="Extension Diagnostics",
    description="Database view of an extension next to what the PBX reports via QueueStatus.",
)
async def debug_extension(
    extension: str = Path(..., description="Agent extension"),
    log_service: PauseLogService = Depends(get_pause_log_service),
    coordinator: PauseCoordinator = Depends(get_pause_coordinator),
    scheduler: AutoUnpauseScheduler = Depends(get_auto_unpause_scheduler),
    settings: Settings = Depends(get_settings),
) -> PauseDebugInfo:
    try:
        interface = settings.interface_for(extension)
        timer = next((t for t in scheduler.get_active_timers() if t.extension == extension), None)
        info = PauseDebugInfo(
            extension=extension,
            interface=interface,
            queue_members=log_service.get_queue_members(extension),
            open_session=log_service.get_open_session(extension),
            presence=log_service.get_presence(extension),
            timer=timer,
        )
    except Exception as e:
        _raise_http(e, "collect extension diagnostics")

    if coordinator.ami_client is None:
        info.ami_error = "AMI disabled"
        return info

    try:
        _, events = await coordinator.ami_client.execute_list_action(queue_status_action(member=interface))
        info.ami_queue_status = [e for e in events if e.get("Event") == "QueueMember"]
    except Exception as e:
        logger.warning(f"AMI QueueStatus failed for {extension}: {e}")
        info.ami_error = str(e)
    return info
