"""Async access to the persisted agent:paused / agent:unpaused / agent:status stream."""

import logging
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from callpause.models.db_models import Event

logger = logging.getLogger(__name__)


class EventRepository:
    """
    Event rows on the `agents` and `agent:<extension>` channels.

    Writes are flushed but not committed: the publisher commits together with
    its NOTIFY so a dashboard never sees a notification for a missing row.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_event(self, channel: str, payload: dict) -> Event:
        event = Event(channel=channel, payload=payload)
        self.session.add(event)
        try:
            await self.session.flush()
        except Exception as e:
            await self.session.rollback()
            logger.error(f"Failed to store {payload.get('type', 'event')} on '{channel}': {e}")
            raise
        await self.session.refresh(event)
        return event

    async def get_events_after(self, channel: str, after_id: int, limit: int = 100) -> list[Event]:
        """Events a reconnecting dashboard missed, oldest first."""
        statement = (
            select(Event)
            .where(Event.channel == channel, Event.id > after_id)
            .order_by(Event.id.asc())
            .limit(limit)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def delete_events_before(self, before_time: datetime) -> int:
        """Drop events past retention; returns the number of rows removed."""
        result = await self.session.execute(delete(Event).where(Event.created_at < before_time))
        if result.rowcount:
            logger.debug(f"Deleted {result.rowcount} pause event(s) created before {before_time}")
        return result.rowcount
