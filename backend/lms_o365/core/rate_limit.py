"""Rate limiting configuration using slowapi."""

from fastapi import Request
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger

logger = get_logger(__name__)

settings = get_settings()


def get_rate_limit_key(request: Request) -> str:
    """
    Get rate limit key - user ID if authenticated, IP address otherwise.

    This provides per-user rate limiting for authenticated requests
    and IP-based limiting for unauthenticated requests.
    """
    session_token = request.cookies.get("session")
    if session_token:
        try:
            payload = jwt.decode(
                session_token,
                settings.secret_key,
                algorithms=["HS256"],
            )
            user_id = payload.get("sub")
            if user_id:
                return f"user:{user_id}"
        except JWTError as e:
            logger.debug(
                "rate_limit_key_fallback_to_ip",
                error_type=type(e).__name__,
            )

    return get_remote_address(request)


# headers_enabled=False: slowapi cannot inject headers into responses
# FastAPI builds from returned pydantic models.
limiter = Limiter(
    key_func=get_rate_limit_key,
    storage_uri=settings.rate_limit_storage_uri,
    headers_enabled=False,
    enabled=settings.rate_limit_enabled,
)


def auth_limit() -> str:
    """Get connect/disconnect endpoint rate limit."""
    return settings.rate_limit_auth


def repository_limit() -> str:
    """Get repository browsing endpoint rate limit."""
    return settings.rate_limit_repository


def upload_limit() -> str:
    """Get upload endpoint rate limit."""
    return settings.rate_limit_upload
