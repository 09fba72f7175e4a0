"""
Repository for the Asterisk realtime queue member table and agent presence.

``queue_members`` is read by the PBX at routing time, so writes here take
effect on the next call offered to the agent even before any AMI action
succeeds.
"""

import logging
from typing import List, Optional

from sqlmodel import Session, col, select

from callpause.models.constants import QUEUE_MEMBER_PAUSED, QUEUE_MEMBER_UNPAUSED
from callpause.models.db_models import Agent, QueueMember
from callpause.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PresenceRepository(BaseRepository[QueueMember]):
    """Queue membership mirror and agent presence access."""

    def __init__(self, session: Session):
        super().__init__(session, QueueMember)

    def get_queue_members(self, interface: str) -> List[QueueMember]:
        """All queue membership rows for an interface, ordered by queue name."""
        statement = (
            select(QueueMember)
            .where(QueueMember.interface == interface)
            .order_by(col(QueueMember.queue_name).asc())
        )
        return list(self.session.exec(statement).all())

    def get_queue_names(self, interface: str) -> List[str]:
        """Distinct queue names the interface belongs to."""
        statement = (
            select(QueueMember.queue_name)
            .where(QueueMember.interface == interface)
            .distinct()
            .order_by(col(QueueMember.queue_name).asc())
        )
        return list(self.session.exec(statement).all())

    def set_paused(
        self,
        interface: str,
        paused: bool,
        paused_reason: Optional[str] = None,
    ) -> int:
        """
        Set the paused flag on every queue membership of an interface.

        Args:
            interface: Member interface, e.g. 'PJSIP/1001'
            paused: New paused state
            paused_reason: Reason code stored while paused (cleared on unpause)

        Returns:
            Number of rows updated
        """
        try:
            members = self.get_queue_members(interface)

            for member in members:
                member.paused = QUEUE_MEMBER_PAUSED if paused else QUEUE_MEMBER_UNPAUSED
                member.paused_reason = paused_reason if paused else None
                self.session.add(member)
            self.session.commit()

            logger.debug(f"Set paused={paused} on {len(members)} queue member row(s) for {interface}")
            return len(members)
        except Exception as e:
            self.session.rollback()
            logger.error(f"Failed to update queue_members for {interface}: {str(e)}")
            raise

    def get_agent(self, extension: str) -> Optional[Agent]:
        return self.session.get(Agent, extension)

    def update_agent_presence(
        self,
        extension: str,
        presence: str,
        pause_reason: Optional[str],
        updated_at_us: int,
    ) -> bool:
        """
        Update an agent's presence columns.

        Returns:
            False when the extension has no agent row
        """
        try:
            agent = self.session.get(Agent, extension)
            if agent is None:
                return False

            agent.presence = presence
            agent.pause_reason = pause_reason
            agent.last_presence_update_us = updated_at_us
            self.session.add(agent)
            self.session.commit()
            return True
        except Exception as e:
            self.session.rollback()
            logger.error(f"Failed to update presence for extension {extension}: {str(e)}")
            raise
