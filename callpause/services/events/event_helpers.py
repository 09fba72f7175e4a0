"""Helper functions for publishing pause lifecycle events."""

import logging
from typing import List, Optional

from callpause.database.init_db import get_async_session_factory
from callpause.models.constants import AgentStatus
from callpause.models.event_models import (
    AgentPausedEvent,
    AgentStatusData,
    AgentStatusEvent,
    AgentUnpausedEvent,
    BaseEvent,
)
from callpause.models.pause_models import PauseReasonSummary
from callpause.services.events.channels import EventChannel
from callpause.services.events.publisher import publish_event

logger = logging.getLogger(__name__)


async def _publish_to_agent_channels(extension: str, event: BaseEvent) -> None:
    """Publish to the global 'agents' channel and the extension's own channel."""
    async_session_factory = get_async_session_factory()
    async with async_session_factory() as session:
        await publish_event(session, EventChannel.AGENTS, event)
        await publish_event(session, EventChannel.agent_details(extension), event)


async def publish_agent_paused(
    extension: str,
    pause_reason: PauseReasonSummary,
    start_time_us: int,
    queues: List[str],
) -> None:
    """
    Publish agent:paused.

    Args:
        extension: Agent extension
        pause_reason: Reason code, label, color and icon
        start_time_us: Session start timestamp
        queues: Queues the pause applied to
    """
    try:
        event = AgentPausedEvent(
            extension=extension,
            pause_reason=pause_reason,
            start_time_us=start_time_us,
            queues=queues,
        )
        await _publish_to_agent_channels(extension, event)
        logger.info(f"[EVENT] Published agent:paused for {extension} ({pause_reason.code})")
    except Exception as e:
        logger.warning(f"Failed to publish agent:paused event for {extension}: {e}")


async def publish_agent_unpaused(
    extension: str,
    queues: List[str],
    pause_duration: int,
    auto_unpaused: bool = False,
) -> None:
    """
    Publish agent:unpaused.

    Args:
        extension: Agent extension
        queues: Queues the unpause applied to
        pause_duration: Seconds the closed session lasted
        auto_unpaused: True when triggered by the auto-unpause timer
    """
    try:
        event = AgentUnpausedEvent(
            extension=extension,
            queues=queues,
            pause_duration=pause_duration,
            auto_unpaused=auto_unpaused,
        )
        await _publish_to_agent_channels(extension, event)
        logger.info(
            f"[EVENT] Published agent:unpaused for {extension} "
            f"(duration={pause_duration}s, auto={auto_unpaused})"
        )
    except Exception as e:
        logger.warning(f"Failed to publish agent:unpaused event for {extension}: {e}")


async def publish_agent_status(
    extension: str,
    status: AgentStatus,
    pause_reason: Optional[PauseReasonSummary] = None,
) -> None:
    """
    Publish agent:status.

    Args:
        extension: Agent extension
        status: Paused or Available
        pause_reason: Reason while paused, None when available
    """
    try:
        event = AgentStatusEvent(
            extension=extension,
            data=AgentStatusData(
                status=status.value,
                pause_reason=pause_reason.code if pause_reason else None,
                pause_reason_label=pause_reason.label if pause_reason else None,
            ),
        )
        await _publish_to_agent_channels(extension, event)
        logger.debug(f"[EVENT] Published agent:status for {extension}: {status.value}")
    except Exception as e:
        logger.warning(f"Failed to publish agent:status event for {extension}: {e}")
