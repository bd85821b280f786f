"""Translation of domain errors into HTTP responses."""

import logging

from fastapi import HTTPException

from ..domain.exceptions import (
    InvalidStreamError,
    MemorialNotFoundError,
    PermissionDeniedError,
    ProviderNotConfiguredError,
    ProviderRejectedError,
    ProviderUnavailableError,
    StreamConflictError,
    StreamNotFoundError,
    StreamReconcilerError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = (
    (StreamNotFoundError, 404),
    (MemorialNotFoundError, 404),
    (StreamConflictError, 409),
    (PermissionDeniedError, 403),
    (InvalidStreamError, 400),
    (ProviderUnavailableError, 503),
    (ProviderNotConfiguredError, 503),
    (ProviderRejectedError, 502),
)


def to_http_exception(error: StreamReconcilerError) -> HTTPException:
    """Map a domain error onto an ``HTTPException``."""
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            break
    else:
        status_code = 500

    if status_code >= 500:
        logger.error(f"❌ {type(error).__name__}: {error}")
    return HTTPException(status_code=status_code, detail=str(error))
