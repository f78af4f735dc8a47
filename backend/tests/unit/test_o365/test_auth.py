"""Tests for MSAL token acquisition."""

from unittest.mock import MagicMock, patch

import pytest

from lms_o365.core.o365.auth import (
    O365AuthService,
    get_o365_auth,
    reset_o365_auth,
    resource_scopes,
)
from lms_o365.core.o365.exceptions import O365AuthenticationError


@pytest.fixture
def mock_settings():
    settings = MagicMock()
    settings.is_o365_configured = True
    settings.azure_ad_tenant_id = "tenant-1234-5678"
    settings.azure_ad_client_id = "client-1234-5678"
    settings.azure_ad_client_secret = "secret"
    settings.azure_ad_redirect_uri = "https://lms.example.com/api/v1/ucp/callback"
    settings.authority = "https://login.microsoftonline.com/tenant-1234-5678"
    settings.graph_resource = "https://graph.microsoft.com"
    return settings


@pytest.fixture
def auth_service(mock_settings):
    with (
        patch("lms_o365.core.o365.auth.get_settings", return_value=mock_settings),
        patch("lms_o365.core.o365.auth.msal.ConfidentialClientApplication") as mock_app_cls,
    ):
        service = O365AuthService()
        yield service, mock_app_cls.return_value


class TestResourceScopes:
    def test_default_scope(self):
        assert resource_scopes("https://graph.microsoft.com") == [
            "https://graph.microsoft.com/.default"
        ]

    def test_trailing_slash(self):
        assert resource_scopes("https://contoso.sharepoint.com/") == [
            "https://contoso.sharepoint.com/.default"
        ]


class TestO365AuthServiceInit:
    """Tests for service construction."""

    def test_not_configured_has_no_app(self, mock_settings):
        mock_settings.is_o365_configured = False
        with (
            patch("lms_o365.core.o365.auth.get_settings", return_value=mock_settings),
            patch("lms_o365.core.o365.auth.msal.ConfidentialClientApplication") as mock_app_cls,
        ):
            service = O365AuthService()

        assert service._msal_app is None
        mock_app_cls.assert_not_called()

    def test_configured_creates_msal_app(self, mock_settings):
        with (
            patch("lms_o365.core.o365.auth.get_settings", return_value=mock_settings),
            patch("lms_o365.core.o365.auth.msal.ConfidentialClientApplication") as mock_app_cls,
        ):
            O365AuthService()

        kwargs = mock_app_cls.call_args.kwargs
        assert kwargs["client_id"] == "client-1234-5678"
        assert kwargs["authority"] == mock_settings.authority

    def test_singleton(self):
        reset_o365_auth()
        try:
            assert get_o365_auth() is get_o365_auth()
        finally:
            reset_o365_auth()


class TestAuthorizationUrl:
    def test_passes_hint_and_prompt(self, auth_service):
        service, app = auth_service
        app.get_authorization_request_url.return_value = "https://login/authorize"

        url = service.get_authorization_url(
            "state123",
            "https://graph.microsoft.com",
            login_hint="jdoe@contoso.com",
            prompt="login",
        )

        assert url == "https://login/authorize"
        args, kwargs = app.get_authorization_request_url.call_args
        assert args[0] == ["https://graph.microsoft.com/.default"]
        assert kwargs["state"] == "state123"
        assert kwargs["login_hint"] == "jdoe@contoso.com"
        assert kwargs["prompt"] == "login"

    def test_omits_empty_hint(self, auth_service):
        service, app = auth_service

        service.get_authorization_url("s", "https://graph.microsoft.com")

        kwargs = app.get_authorization_request_url.call_args.kwargs
        assert "login_hint" not in kwargs
        assert "prompt" not in kwargs

    def test_not_configured_raises(self, mock_settings):
        mock_settings.is_o365_configured = False
        with patch("lms_o365.core.o365.auth.get_settings", return_value=mock_settings):
            service = O365AuthService()

            with pytest.raises(O365AuthenticationError, match="not configured"):
                service.get_authorization_url("s", "https://graph.microsoft.com")


class TestTokenFlows:
    @pytest.mark.asyncio
    async def test_acquire_by_code_returns_result(self, auth_service):
        service, app = auth_service
        app.acquire_token_by_authorization_code.return_value = {
            "access_token": "at",
            "refresh_token": "rt",
            "expires_in": 3600,
        }

        result = await service.acquire_token_by_code("code", "https://graph.microsoft.com")

        assert result["refresh_token"] == "rt"

    @pytest.mark.asyncio
    async def test_acquire_by_code_error_raises(self, auth_service):
        service, app = auth_service
        app.acquire_token_by_authorization_code.return_value = {
            "error": "invalid_grant",
            "error_description": "Code expired",
        }

        with pytest.raises(O365AuthenticationError, match="invalid_grant"):
            await service.acquire_token_by_code("code", "https://graph.microsoft.com")

    @pytest.mark.asyncio
    async def test_refresh_token_uses_resource_scope(self, auth_service):
        service, app = auth_service
        app.acquire_token_by_refresh_token.return_value = {"access_token": "new"}

        await service.refresh_token("rt", "https://contoso.sharepoint.com")

        args, kwargs = app.acquire_token_by_refresh_token.call_args
        assert args[0] == "rt"
        assert kwargs["scopes"] == ["https://contoso.sharepoint.com/.default"]

    @pytest.mark.asyncio
    async def test_app_token_prefers_cache(self, auth_service):
        service, app = auth_service
        app.acquire_token_silent.return_value = {"access_token": "cached"}

        token = await service.get_app_token()

        assert token == "cached"
        app.acquire_token_for_client.assert_not_called()

    @pytest.mark.asyncio
    async def test_app_token_falls_back_to_client_credentials(self, auth_service):
        service, app = auth_service
        app.acquire_token_silent.return_value = None
        app.acquire_token_for_client.return_value = {"access_token": "fresh"}

        assert await service.get_app_token() == "fresh"

    @pytest.mark.asyncio
    async def test_null_result_raises(self, auth_service):
        service, app = auth_service
        app.acquire_token_silent.return_value = None
        app.acquire_token_for_client.return_value = None

        with pytest.raises(O365AuthenticationError, match="no result"):
            await service.get_app_token()

    @pytest.mark.asyncio
    async def test_missing_access_token_raises(self, auth_service):
        service, app = auth_service
        app.acquire_token_by_refresh_token.return_value = {"token_type": "Bearer"}

        with pytest.raises(O365AuthenticationError, match="access_token not in response"):
            await service.refresh_token("rt", "https://graph.microsoft.com")
