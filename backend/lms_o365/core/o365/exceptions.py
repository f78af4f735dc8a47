"""Office 365 REST client exception classes.

These exceptions map to common error scenarios returned by Microsoft Graph,
the OneDrive for Business files API and SharePoint REST endpoints.
"""

from lms_o365.core.exceptions import ExternalServiceError


class O365ApiError(ExternalServiceError):
    """Base exception for Office 365 REST API operations.

    All REST client errors inherit from this class to allow catching
    every API failure with a single except clause.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class O365AuthenticationError(O365ApiError):
    """Raised when a token cannot be obtained or is rejected.

    This can occur when:
    - The user has never connected and no token is stored
    - The refresh token has expired or been revoked
    - Client credentials are invalid
    """

    pass


class O365RateLimitError(O365ApiError):
    """Raised when the API rate limit is exceeded.

    The API returns HTTP 429 with a Retry-After header.
    The retry_after_seconds attribute indicates when to retry.
    """

    def __init__(self, message: str, retry_after_seconds: int | None = None):
        super().__init__(message, status_code=429)
        self.retry_after_seconds = retry_after_seconds


class O365NotFoundError(O365ApiError):
    """Raised when a requested item does not exist (HTTP 404)."""

    pass


class O365PermissionError(O365ApiError):
    """Raised when the token lacks permission for the operation (HTTP 403).

    Distinct from AuthenticationError which is about credential validity.
    """

    pass


class O365UploadError(O365ApiError):
    """Raised when a file or video upload fails."""

    def __init__(self, message: str, filename: str | None = None):
        super().__init__(message)
        self.filename = filename
