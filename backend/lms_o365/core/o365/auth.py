"""MSAL token acquisition for Office 365 resources.

Provides the OAuth2 flows the integration needs:
- Authorization code: users connecting their Office 365 account
- Refresh token: renewing stored user and system tokens, including
  obtaining a token for a new resource from an existing refresh token
- Client credentials: app-only calls (group provisioning, user lookups)

Every Office 365 resource (Graph, OneDrive for Business, SharePoint) is
requested with its ``/.default`` scope.
"""

from typing import Any

import msal

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger
from lms_o365.core.o365.exceptions import O365AuthenticationError

logger = get_logger(__name__)


def resource_scopes(resource: str) -> list[str]:
    """Build the MSAL scope list for an Office 365 resource URL."""
    return [f"{resource.rstrip('/')}/.default"]


class O365AuthService:
    """MSAL-based authentication service for Office 365 APIs.

    Attributes:
        _msal_app: MSAL ConfidentialClientApplication instance
        _settings: Application settings
    """

    def __init__(self) -> None:
        """Initialize the MSAL client from the Azure AD settings."""
        self._settings = get_settings()
        self._msal_app: msal.ConfidentialClientApplication | None = None

        if self.is_configured:
            self._msal_app = self._create_msal_app()
            logger.info(
                "o365_auth_initialized",
                tenant_id=self._settings.azure_ad_tenant_id[:8] + "...",
            )
        else:
            logger.warning(
                "o365_auth_not_configured",
                reason="missing_required_settings",
            )

    def _create_msal_app(self) -> msal.ConfidentialClientApplication:
        """Create and configure MSAL ConfidentialClientApplication."""
        logger.debug(
            "o365_msal_app_creating",
            authority=self._settings.authority,
            client_id=self._settings.azure_ad_client_id[:8] + "...",
        )

        return msal.ConfidentialClientApplication(
            client_id=self._settings.azure_ad_client_id,
            client_credential=self._settings.azure_ad_client_secret,
            authority=self._settings.authority,
        )

    def _require_app(self, flow_type: str) -> msal.ConfidentialClientApplication:
        if not self.is_configured or self._msal_app is None:
            logger.error(f"o365_{flow_type}_token_failed", reason="not_configured")
            raise O365AuthenticationError(
                "Office 365 authentication is not configured"
            )
        return self._msal_app

    def get_authorization_url(
        self,
        state: str,
        resource: str,
        login_hint: str | None = None,
        prompt: str | None = None,
    ) -> str:
        """Build the Azure AD authorization URL for the code flow.

        Args:
            state: Opaque state value round-tripped to the callback
            resource: Resource the resulting token is for
            login_hint: Pre-fill the Azure AD username (matched users)
            prompt: Force a prompt, e.g. "login"

        Returns:
            Authorization URL to redirect the user to
        """
        app = self._require_app("authcode")
        kwargs: dict[str, Any] = {
            "state": state,
            "redirect_uri": self._settings.azure_ad_redirect_uri,
        }
        if login_hint:
            kwargs["login_hint"] = login_hint
        if prompt:
            kwargs["prompt"] = prompt

        return app.get_authorization_request_url(resource_scopes(resource), **kwargs)

    async def acquire_token_by_code(self, code: str, resource: str) -> dict[str, Any]:
        """Exchange an authorization code for tokens.

        Returns:
            MSAL result including access_token, refresh_token and
            id_token_claims

        Raises:
            O365AuthenticationError: If the exchange fails
        """
        app = self._require_app("authcode")
        logger.debug("o365_authcode_token_acquiring", resource=resource)

        result = app.acquire_token_by_authorization_code(
            code,
            scopes=resource_scopes(resource),
            redirect_uri=self._settings.azure_ad_redirect_uri,
        )
        return self._handle_auth_result(result, "authcode")

    async def refresh_token(
        self, refresh_token: str, resource: str
    ) -> dict[str, Any]:
        """Redeem a refresh token for a token on the given resource.

        Azure AD refresh tokens are multi-resource, so this is also how a
        token for a new resource is obtained.

        Raises:
            O365AuthenticationError: If the refresh fails
        """
        app = self._require_app("refresh")
        logger.debug("o365_refresh_token_acquiring", resource=resource)

        result = app.acquire_token_by_refresh_token(
            refresh_token,
            scopes=resource_scopes(resource),
        )
        return self._handle_auth_result(result, "refresh")

    async def get_app_token(self, resource: str | None = None) -> str:
        """Acquire an app-only access token (client credentials flow).

        First attempts to retrieve a cached token, then falls back
        to acquiring a new token from Azure AD.

        Raises:
            O365AuthenticationError: If token acquisition fails
        """
        app = self._require_app("app_only")
        scopes = resource_scopes(resource or self._settings.graph_resource)

        result = app.acquire_token_silent(scopes=scopes, account=None)
        if result and "access_token" in result:
            logger.debug("o365_app_token_cached", expires_in=result.get("expires_in"))
            return self._handle_auth_result(result, "app_only")["access_token"]

        result = app.acquire_token_for_client(scopes=scopes)
        return self._handle_auth_result(result, "app_only")["access_token"]

    def _handle_auth_result(
        self,
        result: dict[str, Any] | None,
        flow_type: str,
    ) -> dict[str, Any]:
        """Process MSAL authentication result.

        Args:
            result: MSAL result dictionary containing access_token or error
            flow_type: Flow name for logging

        Returns:
            The MSAL result dictionary

        Raises:
            O365AuthenticationError: If result is None or contains error
        """
        if result is None:
            logger.error(f"o365_{flow_type}_token_failed", reason="null_result")
            raise O365AuthenticationError(
                f"Failed to acquire {flow_type} token: no result from MSAL"
            )

        if "error" in result:
            error_code = result.get("error", "unknown")
            error_description = result.get("error_description", "No description")

            logger.error(
                f"o365_{flow_type}_token_failed",
                error_code=error_code,
                error_description=error_description[:100],
            )
            raise O365AuthenticationError(
                f"Failed to acquire {flow_type} token: {error_code} - {error_description}"
            )

        if not result.get("access_token"):
            logger.error(
                f"o365_{flow_type}_token_failed",
                reason="missing_access_token",
            )
            raise O365AuthenticationError(
                f"Failed to acquire {flow_type} token: access_token not in response"
            )

        logger.info(
            f"o365_{flow_type}_token_acquired",
            expires_in=result.get("expires_in"),
            token_type=result.get("token_type"),
        )
        return result

    @property
    def is_configured(self) -> bool:
        """Check if the Azure AD application is configured."""
        return self._settings.is_o365_configured


# Module-level singleton for efficiency
_auth_service: O365AuthService | None = None


def get_o365_auth() -> O365AuthService:
    """Get the Office 365 authentication service singleton."""
    global _auth_service
    if _auth_service is None:
        _auth_service = O365AuthService()
    return _auth_service


def reset_o365_auth() -> None:
    """Reset the authentication service singleton.

    Used primarily for testing to ensure clean state between tests.
    """
    global _auth_service
    _auth_service = None
