"""
dynconfig - dynamic configuration client

Polls a remote configuration store (AWS AppConfig), flattens the
configuration document into dotted keys and serves typed reads.
"""

from .common.config import ClientSettings
from .services.config import ConfigService

__version__ = "0.1.0"

__all__ = ["ClientSettings", "ConfigService", "__version__"]
