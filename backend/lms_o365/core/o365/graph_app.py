"""App-only Microsoft Graph SDK client.

Directory operations that act on behalf of the site rather than a user
(creating course groups, looking up users by UPN) use the msgraph SDK with
the Azure AD application's client credentials.

Azure AD App Registration Required Permissions (Application):
- Group.ReadWrite.All
- User.Read.All
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from azure.identity import ClientSecretCredential
from msgraph import GraphServiceClient
from msgraph.generated.models.o_data_errors.o_data_error import ODataError

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_graph_client: GraphServiceClient | None = None


def get_graph_app_client() -> GraphServiceClient | None:
    """Get or create the app-only Graph client.

    Returns:
        GraphServiceClient instance, or None if Azure AD is not configured
    """
    global _graph_client
    settings = get_settings()
    if not settings.is_o365_configured:
        logger.warning("graph_app_client_not_configured")
        return None

    if _graph_client is None:
        credential = ClientSecretCredential(
            tenant_id=settings.azure_ad_tenant_id,
            client_id=settings.azure_ad_client_id,
            client_secret=settings.azure_ad_client_secret,
        )
        _graph_client = GraphServiceClient(
            credentials=credential,
            scopes=[f"{settings.graph_resource.rstrip('/')}/.default"],
        )
    return _graph_client


def reset_graph_app_client() -> None:
    """Drop the cached client. Used primarily for testing."""
    global _graph_client
    _graph_client = None


def odata_status(error: ODataError) -> int | None:
    """Get the HTTP status carried by a Graph SDK error."""
    return getattr(error, "response_status_code", None)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    context: str,
    max_retries: int = 3,
) -> T:
    """Run a Graph SDK call, backing off exponentially on throttling.

    Args:
        operation: Zero-argument callable returning the SDK awaitable
        context: Event name prefix for log entries
        max_retries: Retries allowed on HTTP 429

    Raises:
        ODataError: Non-throttling errors, or throttling after retries
    """
    retry_count = 0
    while True:
        try:
            return await operation()
        except ODataError as e:
            error_code = getattr(e.error, "code", None) if e.error else None
            if odata_status(e) != 429 and error_code != "TooManyRequests":
                raise

            retry_count += 1
            if retry_count > max_retries:
                logger.error(f"{context}_rate_limit_exhausted", retries=retry_count)
                raise

            delay = 2 ** (retry_count - 1)
            logger.warning(
                f"{context}_rate_limited",
                retry_count=retry_count,
                delay=delay,
            )
            await asyncio.sleep(delay)
