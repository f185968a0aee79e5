"""
Domain errors raised by the runtime.

The cluster client translates Kubernetes API exceptions into these types so
callers dispatch on the class, never on message text.
"""
from typing import Optional


class RuntimeAdapterError(Exception):
    """Base class for every error the runtime raises."""


class InvalidResource(RuntimeAdapterError):
    """The resource kind is unsupported or does not match its declared shape."""

    def __init__(self, message: str = "invalid resource"):
        super().__init__(message)


class NotFound(RuntimeAdapterError):
    """The orchestrator reported that the object does not exist."""

    def __init__(self, message: str = "resource not found"):
        super().__init__(message)


class AlreadyExists(RuntimeAdapterError):
    """The orchestrator rejected a create because the object exists."""

    def __init__(self, message: str = "resource already exists"):
        super().__init__(message)


class UpstreamError(RuntimeAdapterError):
    """Any other failed orchestrator call."""

    def __init__(self, message: str, status: Optional[int] = None, reason: str = ""):
        super().__init__(message)
        self.status = status
        self.reason = reason
