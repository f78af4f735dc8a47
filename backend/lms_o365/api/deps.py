"""API dependencies for route protection and common parameters."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from lms_o365.config import get_settings
from lms_o365.core.auth import get_current_active_user
from lms_o365.core.logging import get_logger
from lms_o365.database import DbSession, get_db
from lms_o365.models.user import User

__all__ = [
    "DbSession",
    "CurrentUser",
    "CronAuth",
    "get_db",
    "verify_cron_secret",
]

logger = get_logger(__name__)

# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_active_user)]


def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    """Require the CRON_SECRET bearer token.

    Raises:
        HTTPException: 401 if the secret is unset, missing or wrong
    """
    cron_secret = get_settings().cron_secret
    if not cron_secret:
        logger.warning("cron_secret_not_configured")
    if (
        not cron_secret
        or not authorization
        or not authorization.startswith("Bearer ")
        or authorization[7:] != cron_secret
    ):
        logger.warning("cron_unauthorized")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing CRON_SECRET",
        )


CronAuth = Depends(verify_cron_secret)
