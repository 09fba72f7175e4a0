"""Type-safe event publishing for cross-process event distribution."""

import json
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from callpause.models.event_models import BaseEvent
from callpause.repositories.event_repository import EventRepository

logger = logging.getLogger(__name__)


class EventPublisher:
    """
    Publishes events to database and broadcasts via NOTIFY.

    Events are persisted through EventRepository so clients can catch up;
    PostgreSQL deployments additionally broadcast with NOTIFY. SQLite
    deployments rely on clients polling the catchup endpoint.
    """

    def __init__(self, event_repo: EventRepository) -> None:
        self.event_repo: EventRepository = event_repo

    async def publish(self, channel: str, event: BaseEvent) -> int:
        """
        Publish event to channel.

        Args:
            channel: Channel name (e.g., 'agents', 'agent:1001')
            event: Pydantic event model

        Returns:
            Event ID for catchup

        Raises:
            SQLAlchemyError: If database operation fails
        """
        event_dict = event.model_dump(mode="json")

        db_event = await self.event_repo.create_event(channel=channel, payload=event_dict)

        if self.event_repo.session.bind.dialect.name == "postgresql":
            notify_payload_json = json.dumps({**event_dict, "id": db_event.id})

            # NOTIFY takes no bind parameters: quote the channel identifier and escape the literal
            channel_escaped = channel.replace('"', '""')
            payload_escaped = notify_payload_json.replace("'", "''")
            await self.event_repo.session.execute(
                text(f'''NOTIFY "{channel_escaped}", '{payload_escaped}' ''')
            )
        else:
            logger.debug(f"Event {db_event.id} created on '{channel}' (polling mode)")

        await self.event_repo.session.commit()

        logger.debug(f"Published event to '{channel}': {event.type} (id={db_event.id})")

        return db_event.id


async def publish_event(session: AsyncSession, channel: str, event: BaseEvent) -> int:
    """
    Convenience function for one-off event publishing.

    Args:
        session: Database session
        channel: Event channel
        event: Pydantic event model

    Returns:
        Event ID
    """
    return await EventPublisher(EventRepository(session)).publish(channel, event)
