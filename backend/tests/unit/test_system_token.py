"""Tests for the system refresh token keep-alive task."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lms_o365.core.o365.exceptions import O365AuthenticationError
from lms_o365.services.system_token import refresh_system_refresh_token


def make_session():
    db = AsyncMock()
    session_cm = MagicMock()
    session_cm.__aenter__ = AsyncMock(return_value=db)
    session_cm.__aexit__ = AsyncMock(return_value=None)
    return db, MagicMock(return_value=session_cm)


@pytest.fixture
def settings():
    mock = MagicMock()
    mock.is_o365_configured = True
    mock.graph_resource = "https://graph.microsoft.com"
    with patch("lms_o365.services.system_token.get_settings", return_value=mock):
        yield mock


class TestRefreshSystemRefreshToken:
    @pytest.mark.asyncio
    async def test_skipped_when_not_configured(self, settings):
        settings.is_o365_configured = False

        result = await refresh_system_refresh_token()

        assert result["status"] == "skipped"

    @pytest.mark.asyncio
    async def test_refreshes_and_commits(self, settings):
        db, maker = make_session()
        token = MagicMock(expiry=datetime(2026, 5, 1, tzinfo=UTC))
        manager = MagicMock()
        manager.get_system_token_for_new_resource = AsyncMock(return_value=token)

        with (
            patch("lms_o365.services.system_token.async_session_maker", maker),
            patch("lms_o365.services.system_token.TokenManager", return_value=manager),
        ):
            result = await refresh_system_refresh_token()

        assert result["status"] == "refreshed"
        assert result["expires_at"] == "2026-05-01T00:00:00+00:00"
        db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_no_system_token(self, settings):
        _, maker = make_session()
        manager = MagicMock()
        manager.get_system_token_for_new_resource = AsyncMock(return_value=None)

        with (
            patch("lms_o365.services.system_token.async_session_maker", maker),
            patch("lms_o365.services.system_token.TokenManager", return_value=manager),
        ):
            result = await refresh_system_refresh_token()

        assert result["status"] == "skipped"
        assert result["errors"]

    @pytest.mark.asyncio
    async def test_api_error_rolls_back(self, settings):
        db, maker = make_session()
        manager = MagicMock()
        manager.get_system_token_for_new_resource = AsyncMock(
            side_effect=O365AuthenticationError("refresh token revoked")
        )

        with (
            patch("lms_o365.services.system_token.async_session_maker", maker),
            patch("lms_o365.services.system_token.TokenManager", return_value=manager),
        ):
            result = await refresh_system_refresh_token()

        assert result["status"] == "error"
        assert "revoked" in result["errors"][0]
        db.rollback.assert_called_once()
