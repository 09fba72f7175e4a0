"""
Configuration-related exceptions for callpause.
"""


class ConfigurationError(Exception):
    """
    Raised when configuration loading or validation fails.

    Covers unreadable or malformed YAML files, pydantic validation
    failures and conflicting settings.
    """
    pass
