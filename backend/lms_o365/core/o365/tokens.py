"""Stored OAuth token management for users and the system API user.

Tokens live in the ``o365_tokens`` table keyed by (user, resource). A row
with no user is the system API user's token, used by cron jobs that act
on behalf of the site.

Tokens are refreshed when they are expired (or about to expire). Because
Azure AD refresh tokens are multi-resource, a token for a resource the
user never explicitly consented to is derived from any refresh token
already held for that user.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.core.logging import get_logger
from lms_o365.core.o365.auth import O365AuthService, get_o365_auth
from lms_o365.core.o365.exceptions import O365AuthenticationError
from lms_o365.models.o365 import O365Token
from lms_o365.strings import get_string

logger = get_logger(__name__)

# Refresh tokens this long before they actually expire
EXPIRY_SKEW = timedelta(seconds=60)


class TokenManager:
    """Load, refresh and persist Office 365 tokens."""

    def __init__(
        self,
        db: AsyncSession,
        auth: O365AuthService | None = None,
    ) -> None:
        self.db = db
        self._auth = auth or get_o365_auth()

    async def _load(self, user_id: int | None, resource: str) -> O365Token | None:
        query = select(O365Token).where(O365Token.resource == resource)
        if user_id is None:
            query = query.where(O365Token.user_id.is_(None))
        else:
            query = query.where(O365Token.user_id == user_id)
        result = await self.db.execute(query)
        return result.scalars().first()

    async def _any_token(self, user_id: int | None) -> O365Token | None:
        query = select(O365Token).where(O365Token.refreshtoken != "")
        if user_id is None:
            query = query.where(O365Token.user_id.is_(None))
        else:
            query = query.where(O365Token.user_id == user_id)
        result = await self.db.execute(query.order_by(O365Token.expiry.desc()))
        return result.scalars().first()

    @staticmethod
    def is_expired(token: O365Token, now: datetime | None = None) -> bool:
        """Check whether a token needs refreshing."""
        now = now or datetime.now(UTC)
        expiry = token.expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=UTC)
        return expiry - EXPIRY_SKEW <= now

    async def store_token(
        self,
        user_id: int | None,
        resource: str,
        result: dict[str, Any],
    ) -> O365Token:
        """Insert or update the token row from an MSAL result.

        Args:
            user_id: LMS user id, or None for the system API user
            resource: Resource the token is valid for
            result: MSAL token result

        Returns:
            The stored token row
        """
        expires_in = int(result.get("expires_in") or 3600)
        expiry = datetime.now(UTC) + timedelta(seconds=expires_in)

        token = await self._load(user_id, resource)
        if token is None:
            token = O365Token(user_id=user_id, resource=resource)
            self.db.add(token)

        token.token = result["access_token"]
        token.scope = result.get("scope", "") or ""
        # Azure AD does not always rotate the refresh token
        if result.get("refresh_token"):
            token.refreshtoken = result["refresh_token"]
        elif token.refreshtoken is None:
            token.refreshtoken = ""
        token.expiry = expiry

        await self.db.flush()
        logger.info(
            "o365_token_stored",
            user_id=user_id,
            resource=resource,
            expires_in=expires_in,
        )
        return token

    async def refresh(self, token: O365Token) -> O365Token:
        """Refresh a stored token in place.

        Raises:
            O365AuthenticationError: If the token has no refresh token or
                Azure AD refuses the refresh
        """
        if not token.refreshtoken:
            raise O365AuthenticationError(get_string("errorcouldnotrefreshtoken"))

        logger.info(
            "o365_token_refreshing",
            user_id=token.user_id,
            resource=token.resource,
        )
        result = await self._auth.refresh_token(token.refreshtoken, token.resource)
        return await self.store_token(token.user_id, token.resource, result)

    async def _get_token(
        self,
        user_id: int | None,
        resource: str,
        force_refresh: bool = False,
    ) -> O365Token | None:
        token = await self._load(user_id, resource)
        if token is None:
            return await self._token_for_new_resource(user_id, resource)

        if force_refresh or self.is_expired(token):
            try:
                token = await self.refresh(token)
            except O365AuthenticationError as e:
                logger.warning(
                    "o365_token_refresh_failed",
                    user_id=user_id,
                    resource=resource,
                    error=str(e),
                )
                return None
        return token

    async def _token_for_new_resource(
        self,
        user_id: int | None,
        resource: str,
    ) -> O365Token | None:
        source = await self._any_token(user_id)
        if source is None:
            return None

        try:
            result = await self._auth.refresh_token(source.refreshtoken, resource)
        except O365AuthenticationError as e:
            logger.warning(
                "o365_token_new_resource_failed",
                user_id=user_id,
                resource=resource,
                error=str(e),
            )
            return None
        return await self.store_token(user_id, resource, result)

    async def get_user_token(
        self,
        user_id: int,
        resource: str,
        force_refresh: bool = False,
    ) -> O365Token | None:
        """Get a valid token for a user, refreshing when needed.

        Returns:
            The token row, or None if the user has no usable token
        """
        return await self._get_token(user_id, resource, force_refresh)

    async def get_system_token(
        self,
        resource: str,
        force_refresh: bool = False,
    ) -> O365Token | None:
        """Get a valid token for the system API user."""
        return await self._get_token(None, resource, force_refresh)

    async def get_system_token_for_new_resource(
        self,
        resource: str,
    ) -> O365Token | None:
        """Use any system refresh token to obtain a token for ``resource``.

        Run periodically so the system refresh token never goes unused long
        enough to expire.
        """
        return await self._token_for_new_resource(None, resource)

    async def has_token(self, user_id: int, resource: str) -> bool:
        """Check whether a user holds a stored token for a resource."""
        return await self._load(user_id, resource) is not None

    async def delete_user_tokens(self, user_id: int) -> None:
        """Remove every stored token for a user."""
        await self.db.execute(delete(O365Token).where(O365Token.user_id == user_id))
        logger.info("o365_user_tokens_deleted", user_id=user_id)


class TokenSource:
    """Access token provider bound to one user (or the system) and resource.

    REST clients call ``get_access_token`` when building their HTTP client
    and again with ``force_refresh=True`` after a 401.
    """

    def __init__(
        self,
        manager: TokenManager,
        resource: str,
        user_id: int | None = None,
    ) -> None:
        self._manager = manager
        self.resource = resource
        self.user_id = user_id

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """Return a usable access token.

        Raises:
            O365AuthenticationError: If no token can be obtained
        """
        if self.user_id is None:
            token = await self._manager.get_system_token(
                self.resource, force_refresh=force_refresh
            )
        else:
            token = await self._manager.get_user_token(
                self.user_id, self.resource, force_refresh=force_refresh
            )

        if token is None:
            raise O365AuthenticationError(get_string("erroro365apinotoken"))
        return token.token
