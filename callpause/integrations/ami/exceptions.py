"""Asterisk Manager Interface exceptions."""

from typing import Any, Dict, Optional


class AMIError(Exception):
    """Base class for AMI failures."""

    def __init__(self, message: str, action: Optional[str] = None, response: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.action = action
        self.response = response or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "action": self.action,
            "response": self.response,
        }


class AMIConnectionError(AMIError):
    """Connection, login or transport failure."""
    pass


class AMIActionError(AMIError):
    """Asterisk answered with Response: Error, or the action timed out."""
    pass
