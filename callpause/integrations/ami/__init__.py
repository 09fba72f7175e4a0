"""Asterisk Manager Interface client."""

from .client import AMIClient, create_ami_client
from .exceptions import AMIActionError, AMIConnectionError, AMIError

__all__ = ["AMIClient", "create_ami_client", "AMIError", "AMIActionError", "AMIConnectionError"]
