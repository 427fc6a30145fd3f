"""
Config Service - Dynamic Configuration Client

Responsibilities:
- Poll the remote configuration store on a fixed schedule
- Flatten nested configuration documents into a key/value cache
- Serve typed reads with default fallback
- Re-establish the session when the store rejects its token
"""

from .cache import ConfigCache
from .flatten import ConfigValue, ValueType, flatten, parse_document
from .service import ConfigService
from .session import Session, SessionManager, SessionState
from .store import AppConfigDataStore, ConfigStore, PollResult, create_store

__all__ = [
    "ConfigService",
    "ConfigCache",
    "ConfigValue",
    "ValueType",
    "flatten",
    "parse_document",
    "Session",
    "SessionManager",
    "SessionState",
    "AppConfigDataStore",
    "ConfigStore",
    "PollResult",
    "create_store",
]
