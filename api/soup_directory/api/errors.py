import logging

from fastapi import HTTPException, status as http_status

from soup_directory.services.errors import (
    RepositoryError,
    RepositoryInvalidStateError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)

logger = logging.getLogger(__name__)

UNAVAILABLE_DETAIL = "internal server error"


def repository_http_error(exc: RepositoryError) -> HTTPException:
    """Translate a repository error into the HTTP error the route raises."""
    if isinstance(exc, (RepositoryValidationError, RepositoryInvalidStateError)):
        return HTTPException(status_code=http_status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, RepositoryNotFoundError):
        return HTTPException(status_code=http_status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, RepositoryUnavailableError):
        logger.error("repository unavailable error=%s: %s", type(exc).__name__, exc)
        return HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=UNAVAILABLE_DETAIL)
    logger.error("unhandled repository error=%s: %s", type(exc).__name__, exc)
    return HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail=UNAVAILABLE_DETAIL)


def forbidden(exc: PermissionError) -> HTTPException:
    return HTTPException(status_code=http_status.HTTP_403_FORBIDDEN, detail=str(exc))
