"""
Configuration package for birdsql settings.

Usage:
    from birdsql.config import Settings, get_settings, validate_config

    # Get settings singleton (cached, preferred method)
    settings = get_settings()
    print(settings.database_url)

    # Create new instance (useful for testing)
    settings = Settings(database_url="sqlite:///birds.db")
"""

from birdsql.config.settings import (
    Settings,
    detect_environment,
    get_database_url_sync,
    get_settings,
    validate_config,
)

__all__ = [
    "Settings",
    "get_database_url_sync",
    "get_settings",
    "validate_config",
    "detect_environment",
]
