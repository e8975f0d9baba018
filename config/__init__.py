"""Configuration module for the grounding service.

Provides settings and store configuration.
"""

from .settings import Settings, get_settings, reset_settings
from .database import (
    DatabaseConfig,
    DatabaseFactory,
    db_factory,
    get_store,
    initialize_database,
    close_database
)

__all__ = [
    'Settings',
    'get_settings',
    'reset_settings',
    'DatabaseConfig',
    'DatabaseFactory',
    'db_factory',
    'get_store',
    'initialize_database',
    'close_database'
]
