"""Keep the system API user's refresh token alive.

Azure AD refresh tokens expire when unused. Redeeming the stored system
refresh token on a schedule rotates it before that can happen.
"""

from datetime import UTC, datetime
from typing import Any

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger
from lms_o365.core.o365.exceptions import O365ApiError
from lms_o365.core.o365.tokens import TokenManager
from lms_o365.database import async_session_maker

logger = get_logger(__name__)


async def refresh_system_refresh_token() -> dict:
    """Redeem the system refresh token for a fresh Graph token.

    This function is designed to be called from a cron endpoint.
    It creates its own database session.

    Returns:
        Dict with status "refreshed", "skipped" or "error"
    """
    settings = get_settings()
    results: dict[str, Any] = {
        "status": "skipped",
        "resource": settings.graph_resource,
        "expires_at": None,
        "errors": [],
        "timestamp": datetime.now(UTC).isoformat(),
    }

    if not settings.is_o365_configured:
        logger.info("system_token_refresh_skipped", reason="not_configured")
        return results

    async with async_session_maker() as db:
        try:
            manager = TokenManager(db)
            token = await manager.get_system_token_for_new_resource(settings.graph_resource)
            if token is None:
                logger.warning("system_token_refresh_skipped", reason="no_system_token")
                results["errors"].append("No system API user token is stored")
                return results

            await db.commit()
            results["status"] = "refreshed"
            results["expires_at"] = token.expiry.isoformat()
            logger.info(
                "system_token_refreshed",
                resource=settings.graph_resource,
                expires_at=results["expires_at"],
            )
        except O365ApiError as e:
            await db.rollback()
            results["status"] = "error"
            results["errors"].append(str(e)[:200])
            logger.exception("system_token_refresh_error", error=str(e))

    return results
