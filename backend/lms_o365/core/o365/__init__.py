"""Office 365 REST integration.

Modules:
    - exceptions: REST client exception classes
    - auth: MSAL token acquisition
    - tokens: stored user and system token management
    - client: base HTTP client with retry and paging
    - calendar: Outlook calendars via Microsoft Graph
    - unified: OneDrive, group drives and insights via Microsoft Graph
    - onedrive: legacy OneDrive for Business files API
    - sharepoint: SharePoint sites and Office 365 Video
"""

from lms_o365.core.o365.auth import (
    O365AuthService,
    get_o365_auth,
    reset_o365_auth,
    resource_scopes,
)
from lms_o365.core.o365.calendar import CalendarClient
from lms_o365.core.o365.client import O365ApiClient
from lms_o365.core.o365.exceptions import (
    O365ApiError,
    O365AuthenticationError,
    O365NotFoundError,
    O365PermissionError,
    O365RateLimitError,
    O365UploadError,
)
from lms_o365.core.o365.onedrive import OneDriveClient
from lms_o365.core.o365.sharepoint import SharePointClient
from lms_o365.core.o365.tokens import TokenManager, TokenSource
from lms_o365.core.o365.unified import UnifiedClient

__all__ = [
    # Exceptions
    "O365ApiError",
    "O365AuthenticationError",
    "O365RateLimitError",
    "O365NotFoundError",
    "O365PermissionError",
    "O365UploadError",
    # Auth
    "O365AuthService",
    "get_o365_auth",
    "reset_o365_auth",
    "resource_scopes",
    "TokenManager",
    "TokenSource",
    # Clients
    "O365ApiClient",
    "CalendarClient",
    "UnifiedClient",
    "OneDriveClient",
    "SharePointClient",
]
