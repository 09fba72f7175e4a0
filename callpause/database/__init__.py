"""
Database Package

Contains engine creation, migration and initialization utilities.
"""

from .init_db import initialize_database

__all__ = ["initialize_database"]
