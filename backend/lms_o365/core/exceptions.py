"""Core application exception classes.

This module provides a centralized exception hierarchy for the Office 365
integration. All custom exceptions inherit from O365IntegrationError,
enabling:
- Consistent error handling across the application
- Easy categorization of errors by type
- Structured logging with exception context

Exception Hierarchy:
    O365IntegrationError (base)
    +-- ExternalServiceError (API/service failures)
    |   +-- GraphAPIError
    |   +-- O365ApiError (defined in core/o365/exceptions.py)
    +-- CacheError (caching failures)
    |   +-- RedisCacheError
    +-- ConfigurationError (missing/invalid configuration)
    +-- NotConnectedError (user has no Office 365 connection)
    +-- RepositoryError (file repository failures, carries a string code)
        +-- BadPathError
        +-- BadClientTypeError
        +-- AccessDeniedError
        +-- DownloadError
        +-- RepositoryNotConfiguredError
        +-- O365RequiredError
        +-- FileReferenceNotFoundError
"""

from lms_o365.strings import get_string


class O365IntegrationError(Exception):
    """Base exception for all integration errors.

    All custom exceptions should inherit from this class to enable:
    - Catching all application errors with a single except clause
    - Distinguishing application errors from system errors
    - Consistent error handling and logging patterns

    Example:
        try:
            await some_operation()
        except O365IntegrationError as e:
            logger.error("application_error", error=str(e), exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))
    """

    pass


# --- Category Exceptions ---


class ExternalServiceError(O365IntegrationError):
    """Base exception for external service/API failures.

    Use this for errors when communicating with external APIs such as:
    - Microsoft Graph API
    - OneDrive for Business and SharePoint REST APIs
    - Azure AD token endpoints
    """

    pass


class CacheError(O365IntegrationError):
    """Base exception for caching operation failures.

    The application should gracefully degrade when cache operations fail.
    """

    pass


class ConfigurationError(O365IntegrationError):
    """Exception for missing or invalid configuration.

    This exception typically indicates a deployment/setup issue rather
    than a runtime error.
    """

    pass


class NotConnectedError(O365IntegrationError):
    """Raised when an operation needs the user's Office 365 connection."""

    def __init__(self, message: str | None = None):
        super().__init__(message or get_string("ucp_notconnected"))


# --- Service-Specific Exceptions ---


class GraphAPIError(ExternalServiceError):
    """Exception for Microsoft Graph SDK failures.

    Use for errors from GraphServiceClient operations (group provisioning,
    user lookups). Raw REST client errors use the O365ApiError hierarchy.
    """

    pass


class RedisCacheError(CacheError):
    """Exception for Redis-specific cache failures."""

    pass


# --- Repository Exceptions ---


class RepositoryError(O365IntegrationError):
    """Base exception for file repository operations.

    The message is looked up from the repository language strings using
    ``error_code`` so API responses show the same text users see elsewhere.
    """

    error_code = "errorwhiledownload"

    def __init__(self, message: str | None = None, error_code: str | None = None):
        if error_code is not None:
            self.error_code = error_code
        super().__init__(
            message or get_string(self.error_code, "repository_office365")
        )


class BadPathError(RepositoryError):
    """Raised when a repository path cannot be resolved."""

    error_code = "errorbadpath"


class BadClientTypeError(RepositoryError):
    """Raised when an upload target has no matching API client."""

    error_code = "errorbadclienttype"


class AccessDeniedError(RepositoryError):
    """Raised when the user may not access a course or group."""

    error_code = "erroraccessdenied"


class DownloadError(RepositoryError):
    """Raised when a remote file cannot be downloaded."""

    error_code = "errorwhiledownload"


class RepositoryNotConfiguredError(RepositoryError):
    """Raised when the repository is used before O365 is configured."""

    error_code = "errorauthoidcnotconfig"


class O365RequiredError(RepositoryError):
    """Raised when an embedded file is requested by a non-O365 user."""

    error_code = "erroro365required"


class FileReferenceNotFoundError(RepositoryError):
    """Raised when a stored file reference no longer points at a file."""

    error_code = "filenotfound"
