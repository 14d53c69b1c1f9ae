from __future__ import annotations

from fastapi import HTTPException, status

from domain import (
    AuthorizationError,
    ConflictError,
    GitDeployError,
    NotFoundError,
    SecretMismatchError,
    ValidationError,
)


STATUS_BY_ERROR: tuple[tuple[type[GitDeployError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (SecretMismatchError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
)


def to_http_exception(exc: GitDeployError) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
