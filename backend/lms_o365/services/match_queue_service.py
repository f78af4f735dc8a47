"""Manual user matching between LMS and Office 365 accounts.

Administrators queue (LMS username, Office 365 UPN) pairs. The
``process_match_queue`` cron job validates each pair and records a
connection, which lets the user connect to the matched account later.
Rejected pairs are marked completed with the reason as error message.
"""

from datetime import UTC, datetime
from typing import Any

from msgraph.generated.models.o_data_errors.o_data_error import ODataError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger
from lms_o365.core.o365.graph_app import call_with_retry, get_graph_app_client, odata_status
from lms_o365.database import async_session_maker
from lms_o365.models.o365 import MatchQueueItem, O365Connection, O365Object, ObjectType
from lms_o365.models.user import AuthMethod, User
from lms_o365.strings import get_string

logger = get_logger(__name__)


class MatchQueueService:
    """Validate and apply queued matches."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def enqueue(
        self,
        musername: str,
        o365username: str,
        openidconnect: bool = False,
    ) -> MatchQueueItem:
        item = MatchQueueItem(
            musername=musername.strip().lower(),
            o365username=o365username.strip(),
            openidconnect=openidconnect,
            completed=False,
            errormessage="",
        )
        self.db.add(item)
        await self.db.flush()
        logger.info("match_queue_item_added", queue_id=item.id, musername=item.musername)
        return item

    async def get_pending_items(self, limit: int) -> list[MatchQueueItem]:
        result = await self.db.execute(
            select(MatchQueueItem)
            .where(MatchQueueItem.completed.is_(False))
            .order_by(MatchQueueItem.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def lookup_aad_user(self, upn: str) -> Any | None:
        """Find an Azure AD user by UPN.

        Returns:
            The Graph user, or None when no such user exists

        Raises:
            ODataError: For failures other than "not found"
            RuntimeError: If Graph is not configured
        """
        client = get_graph_app_client()
        if client is None:
            raise RuntimeError("Microsoft Graph is not configured")
        try:
            return await call_with_retry(
                lambda: client.users.by_user_id(upn).get(),
                context="match_queue_lookup",
            )
        except ODataError as e:
            if odata_status(e) == 404:
                return None
            raise

    async def _find_user(self, username: str) -> User | None:
        result = await self.db.execute(
            select(User).where(func.lower(User.username) == username.lower())
        )
        return result.scalar_one_or_none()

    async def _connection_for_user(self, user_id: int) -> O365Connection | None:
        result = await self.db.execute(
            select(O365Connection).where(O365Connection.muserid == user_id)
        )
        return result.scalar_one_or_none()

    async def _connection_for_upn(self, upn: str) -> O365Connection | None:
        result = await self.db.execute(
            select(O365Connection).where(func.lower(O365Connection.aadupn) == upn.lower())
        )
        return result.scalar_one_or_none()

    async def _user_object(self, object_id: str) -> O365Object | None:
        result = await self.db.execute(
            select(O365Object).where(
                O365Object.type == ObjectType.USER.value,
                O365Object.objectid == object_id,
            )
        )
        return result.scalars().first()

    async def process_item(self, item: MatchQueueItem) -> bool:
        """Validate and apply one queued match.

        Returns:
            True if a connection was recorded, False if the match was rejected
        """
        user = await self._find_user(item.musername)
        if user is None:
            return self._reject(item, "task_processmatchqueue_err_nomuser")

        aad_user = await self.lookup_aad_user(item.o365username)
        if aad_user is None:
            return self._reject(item, "task_processmatchqueue_err_noo365user")

        if await self._connection_for_user(user.id) is not None:
            return self._reject(item, "task_processmatchqueue_err_museralreadymatched")

        upn = aad_user.user_principal_name or item.o365username
        if await self._connection_for_upn(upn) is not None:
            return self._reject(item, "task_processmatchqueue_err_o365useralreadymatched")

        if user.auth == AuthMethod.OIDC:
            return self._reject(item, "task_processmatchqueue_err_museralreadyo365")

        user_object = await self._user_object(aad_user.id) if aad_user.id else None
        if user_object is not None and user_object.moodleid != user.id:
            return self._reject(item, "task_processmatchqueue_err_o365useralreadyconnected")

        self.db.add(
            O365Connection(
                muserid=user.id,
                aadupn=upn,
                uselogin=item.openidconnect,
            )
        )
        item.completed = True
        item.errormessage = ""
        await self.db.flush()
        logger.info(
            "match_queue_item_matched",
            queue_id=item.id,
            user_id=user.id,
            uselogin=item.openidconnect,
        )
        return True

    def _reject(self, item: MatchQueueItem, string_id: str) -> bool:
        item.completed = True
        item.errormessage = get_string(string_id)
        logger.info("match_queue_item_rejected", queue_id=item.id, reason=string_id)
        return False


async def process_match_queue() -> dict:
    """Process a batch of uncompleted match queue rows.

    This function is designed to be called from a cron endpoint.
    It creates its own database session.

    Returns:
        Dict with processing results
    """
    results: dict[str, Any] = {
        "status": "success",
        "items_processed": 0,
        "items_matched": 0,
        "items_rejected": 0,
        "items_failed": 0,
        "errors": [],
        "timestamp": datetime.now(UTC).isoformat(),
    }

    settings = get_settings()
    if not settings.is_o365_configured:
        logger.info("match_queue_skipped", reason="not_configured")
        results["status"] = "skipped"
        return results

    async with async_session_maker() as db:
        service = MatchQueueService(db)
        items = await service.get_pending_items(settings.match_queue_batch_size)
        if not items:
            logger.info("match_queue_no_pending_items")
            return results

        logger.info("match_queue_items_found", count=len(items))
        for item in items:
            queue_id = item.id
            results["items_processed"] += 1
            try:
                async with db.begin_nested():
                    matched = await service.process_item(item)
            except (ODataError, RuntimeError) as e:
                # Left uncompleted so the next run retries it
                results["items_failed"] += 1
                results["errors"].append(f"Item {queue_id}: {str(e)[:100]}")
                logger.exception("match_queue_item_error", queue_id=queue_id, error=str(e))
                continue

            if matched:
                results["items_matched"] += 1
            else:
                results["items_rejected"] += 1

        await db.commit()

    if results["items_failed"]:
        succeeded = results["items_matched"] + results["items_rejected"]
        results["status"] = "partial" if succeeded else "error"

    logger.info(
        "match_queue_processing_completed",
        processed=results["items_processed"],
        matched=results["items_matched"],
        rejected=results["items_rejected"],
        failed=results["items_failed"],
    )
    return results
