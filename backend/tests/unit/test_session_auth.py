"""Tests for LMS session authentication.

Covers session token signing and the cookie / Bearer lookup used by
get_current_user.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException
from jose import jwt

from lms_o365.core.auth import (
    JWT_ALGORITHM,
    create_session_token,
    get_current_user,
    get_user_from_session,
)
from lms_o365.models.user import User

SECRET = "s" * 40


@pytest.fixture(autouse=True)
def settings():
    with patch("lms_o365.core.auth.settings") as mock_settings:
        mock_settings.secret_key = SECRET
        mock_settings.session_expire_minutes = 60
        yield mock_settings


def make_request(cookies=None, headers=None):
    request = MagicMock()
    request.cookies = cookies or {}
    request.headers = headers or {}
    return request


def make_db(user=None):
    db = AsyncMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = user
    db.execute = AsyncMock(return_value=result)
    return db


class TestCreateSessionToken:
    def test_subject_is_user_id(self):
        token = create_session_token(5)

        payload = jwt.decode(token, SECRET, algorithms=[JWT_ALGORITHM])
        assert payload["sub"] == "5"
        assert "exp" in payload


class TestGetUserFromSession:
    @pytest.mark.asyncio
    async def test_no_credentials(self):
        db = make_db()

        assert await get_user_from_session(make_request(), db) is None
        db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_cookie(self):
        user = User(id=5, username="jdoe", email="jdoe@example.com")
        request = make_request(cookies={"session": create_session_token(5)})

        assert await get_user_from_session(request, make_db(user)) is user

    @pytest.mark.asyncio
    async def test_bearer(self):
        user = User(id=5, username="jdoe", email="jdoe@example.com")
        request = make_request(headers={"Authorization": f"Bearer {create_session_token(5)}"})

        assert await get_user_from_session(request, make_db(user)) is user

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "header",
        ["BearerTokenWithNoSpace", "Basic dXNlcjpwYXNz", "Bearer"],
    )
    async def test_malformed_header(self, header):
        db = make_db()

        assert await get_user_from_session(make_request(headers={"Authorization": header}), db) is None
        db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_signature(self):
        token = jwt.encode({"sub": "5"}, "other" * 10, algorithm=JWT_ALGORITHM)

        assert await get_user_from_session(make_request(cookies={"session": token}), make_db()) is None

    @pytest.mark.asyncio
    async def test_expired(self):
        token = jwt.encode({"sub": "5", "exp": 1}, SECRET, algorithm=JWT_ALGORITHM)

        assert await get_user_from_session(make_request(cookies={"session": token}), make_db()) is None

    @pytest.mark.asyncio
    async def test_non_numeric_subject(self):
        token = jwt.encode({"sub": "jdoe"}, SECRET, algorithm=JWT_ALGORITHM)

        assert await get_user_from_session(make_request(cookies={"session": token}), make_db()) is None


class TestGetCurrentUser:
    @pytest.mark.asyncio
    async def test_unauthenticated(self):
        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(make_request(), make_db())

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_disabled_user(self):
        user = User(id=5, username="jdoe", email="jdoe@example.com", is_active=False)
        request = make_request(cookies={"session": create_session_token(5)})

        with pytest.raises(HTTPException) as exc_info:
            await get_current_user(request, make_db(user))

        assert exc_info.value.status_code == 403
