"""Event channel definitions for pause lifecycle events."""


class EventChannel:
    """Event channel definitions for pause lifecycle events."""

    AGENTS = "agents"
    """
    Global pause lifecycle events for all extensions.

    Events: agent:paused, agent:unpaused, agent:status
    Consumers: supervisor wallboard, paused-agents panel
    """

    @staticmethod
    def agent_details(extension: str) -> str:
        """
        Per-extension channel followed by the agent's own softphone.

        Args:
            extension: Agent extension

        Returns:
            Channel name (e.g., "agent:1001")
        """
        return f"agent:{extension}"
