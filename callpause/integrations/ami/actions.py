"""Builders for the AMI actions used by pause coordination."""

from typing import Dict, Optional

from callpause.models.constants import AMI_PAUSED, AMI_UNPAUSED


def queue_pause_action(queue: str, interface: str, paused: bool, reason: Optional[str] = None) -> Dict[str, str]:
    """QueuePause for one queue membership; Reason is only sent when pausing."""
    action = {
        "Action": "QueuePause",
        "Queue": queue,
        "Interface": interface,
        "Paused": AMI_PAUSED if paused else AMI_UNPAUSED,
    }
    if paused and reason:
        action["Reason"] = reason
    return action


def command_action(command: str) -> Dict[str, str]:
    """CLI command over AMI, e.g. 'queue reload all'."""
    return {"Action": "Command", "Command": command}


def queue_status_action(queue: Optional[str] = None, member: Optional[str] = None) -> Dict[str, str]:
    """QueueStatus, optionally filtered by queue and member interface."""
    action = {"Action": "QueueStatus"}
    if queue:
        action["Queue"] = queue
    if member:
        action["Member"] = member
    return action
