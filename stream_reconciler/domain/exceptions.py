"""Domain exceptions for stream reconciliation."""

from typing import Optional


class StreamReconcilerError(Exception):
    """Base class for all reconciliation errors."""


class ProviderError(StreamReconcilerError):
    """A video provider call failed."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderUnavailableError(ProviderError):
    """Transient vendor failure (network, timeout, 5xx). Safe to retry."""


class ProviderRejectedError(ProviderError):
    """Vendor refused the request (4xx). Retrying will not help."""


class ProviderNotConfiguredError(StreamReconcilerError):
    """No adapter is registered for the requested provider."""


class StreamNotFoundError(StreamReconcilerError):
    """Referenced stream does not exist."""

    def __init__(self, stream_id: str):
        super().__init__(f"Stream not found: {stream_id}")
        self.stream_id = stream_id


class MemorialNotFoundError(StreamReconcilerError):
    """Referenced memorial does not exist."""

    def __init__(self, memorial_id: str):
        super().__init__(f"Memorial not found: {memorial_id}")
        self.memorial_id = memorial_id


class StreamConflictError(StreamReconcilerError):
    """Requested change violates the stream state machine."""


class PermissionDeniedError(StreamReconcilerError):
    """Actor may not administer the owning memorial."""


class InvalidStreamError(StreamReconcilerError):
    """Stream payload violates record rules."""
