"""
Custom Exception Classes for the dynconfig client

Hierarchical exception structure for error handling across services.
"""


class DynConfigError(Exception):
    """Base exception for all dynconfig errors"""

    def __init__(self, message: str, recoverable: bool = True):
        self.message = message
        self.recoverable = recoverable
        super().__init__(message)


class SettingsError(DynConfigError):
    """Local settings are missing or invalid"""

    def __init__(self, message: str):
        super().__init__(f"Settings Error: {message}", recoverable=False)


class StoreError(DynConfigError):
    """Remote configuration store errors"""

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(f"Store Error: {message}", recoverable=True)


class InvalidSessionError(StoreError):
    """Store rejected the continuation token or the request itself"""


class ResourceNotFoundError(StoreError):
    """Application, environment or configuration profile does not exist"""


class ThrottledError(StoreError):
    """Store throttled the request"""


class PayloadError(DynConfigError):
    """Configuration payload could not be parsed"""

    def __init__(self, message: str, payload: str = ""):
        self.payload = payload
        super().__init__(f"Payload Error: {message}", recoverable=True)
