"""LMS session authentication.

The LMS signs users in and hands this service a session JWT, either as the
``session`` cookie (browser clients) or as a Bearer token (programmatic
access). The token's ``sub`` claim is the LMS user id.
"""

from datetime import UTC, datetime, timedelta

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger
from lms_o365.database import get_db
from lms_o365.models.user import User

logger = get_logger(__name__)

settings = get_settings()

JWT_ALGORITHM = "HS256"
SESSION_COOKIE = "session"


def create_session_token(user_id: int, expires_minutes: int | None = None) -> str:
    """Sign a session token for an LMS user."""
    expire = datetime.now(UTC) + timedelta(
        minutes=expires_minutes or settings.session_expire_minutes
    )
    return jwt.encode(
        {"sub": str(user_id), "exp": expire},
        settings.secret_key,
        algorithm=JWT_ALGORITHM,
    )


def _extract_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        return token

    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.debug("bearer_token_invalid_format")
        return None
    return parts[1]


async def get_user_from_session(
    request: Request,
    db: AsyncSession,
) -> User | None:
    """Get user from the session cookie or Bearer token if present."""
    session_token = _extract_token(request)
    if not session_token:
        return None

    try:
        payload = jwt.decode(session_token, settings.secret_key, algorithms=[JWT_ALGORITHM])
        user_id = payload.get("sub")
        if not user_id:
            return None

        result = await db.execute(select(User).where(User.id == int(user_id)))
        return result.scalar_one_or_none()
    except (JWTError, ValueError) as e:
        logger.debug(
            "session_token_invalid",
            error_type=type(e).__name__,
        )
        return None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get current authenticated user.

    Raises:
        HTTPException: 401 if not authenticated, 403 if user is disabled
    """
    user = await get_user_from_session(request, db)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Get current active user."""
    return current_user
