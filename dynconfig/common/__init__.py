"""
Common Utilities

Shared modules used across the client:
- config.py - Client settings (YAML + environment overrides)
- exceptions.py - Custom exception classes
- logging_setup.py - Structured logging setup
- scheduler.py - Fixed-rate background loop
"""

from .config import (
    ClientSettings,
    apply_env_overrides,
    load_client_settings,
    load_settings_file,
)
from .exceptions import (
    DynConfigError,
    SettingsError,
    StoreError,
    InvalidSessionError,
    ResourceNotFoundError,
    ThrottledError,
    PayloadError,
)
from .logging_setup import (
    setup_logging,
    get_service_logger,
    set_log_level,
)
from .scheduler import ScheduledLoop

__all__ = [
    # Settings
    "ClientSettings",
    "apply_env_overrides",
    "load_client_settings",
    "load_settings_file",
    # Exceptions
    "DynConfigError",
    "SettingsError",
    "StoreError",
    "InvalidSessionError",
    "ResourceNotFoundError",
    "ThrottledError",
    "PayloadError",
    # Logging
    "setup_logging",
    "get_service_logger",
    "set_log_level",
    # Scheduling
    "ScheduledLoop",
]
