"""Migration tool exceptions."""

from typing import Any, Optional


class MigrationError(Exception):
    """Base exception whose message is safe to show to the operator."""

    pass


class ApiError(MigrationError):
    """Base exception for platform API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        """Initialize API error.

        Args:
            message: Error message
            status_code: HTTP status code, None for network failures
            response_data: Response body returned by the API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class AuthenticationError(ApiError):
    """Credentials were rejected by the platform."""

    pass


class NotFoundError(ApiError):
    """Resource not found error."""

    pass


class ApiTimeoutError(ApiError):
    """Request kept timing out until retries were exhausted."""

    pass


class ArchiveValidationError(MigrationError):
    """Archive upload request is invalid."""

    pass


class UploadTimeoutError(MigrationError):
    """Archive upload timed out."""

    def __init__(self, archive_name: str):
        super().__init__(f'Archive upload timed out: {archive_name}')
        self.archive_name = archive_name
