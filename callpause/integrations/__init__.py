"""
Integrations package.

External system clients used by the pause coordinator.
"""

from .ami import AMIClient

__all__ = ["AMIClient"]
