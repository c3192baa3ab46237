from fastapi import status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFoundError(ServiceError):
    """Referenced entity is absent."""

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(ServiceError):
    """Uniqueness violation, e.g. two writers creating the same versioned row."""

    def __init__(self, message: str = "Conflict") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class PermissionDeniedError(ServiceError):
    def __init__(self, message: str = "Insufficient permissions") -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class ValidationFailedError(ServiceError):
    """Input rejected before any write was attempted."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class TransientIOError(ServiceError):
    """Network or backing-service failure. Surfaced to the caller, never retried."""

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


def translate_db_error(exc: SQLAlchemyError, conflict_message: str = "Conflict") -> ServiceError:
    """Map a failed flush/commit onto the service error taxonomy."""
    if isinstance(exc, IntegrityError):
        return ConflictError(conflict_message)
    return TransientIOError("Database is temporarily unavailable")
