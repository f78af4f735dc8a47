"""Base HTTP client for Office 365 REST APIs.

Provides low-level HTTP operations shared by the Graph, OneDrive for
Business and SharePoint clients with:
- Automatic retry with exponential backoff for transient errors
- Rate limit handling (HTTP 429) with Retry-After header support
- One token refresh on HTTP 401
- OData paging via ``@odata.nextLink``
- Proper error mapping to O365ApiError classes
"""

import asyncio
from typing import Any

import httpx

from lms_o365.core.logging import get_logger
from lms_o365.core.o365.exceptions import (
    O365ApiError,
    O365AuthenticationError,
    O365NotFoundError,
    O365PermissionError,
    O365RateLimitError,
)
from lms_o365.core.o365.tokens import TokenSource

logger = get_logger(__name__)


class O365ApiClient:
    """Low-level Office 365 REST client with retry and throttling.

    Subclasses set ``base_url`` (or pass one in) and add resource-specific
    operations on top of ``_request``.

    Attributes:
        DEFAULT_BASE_URL: Base URL used when none is given
        ACCEPT: Accept header sent with every request
        MAX_PAGES: Upper bound on followed nextLink pages
    """

    DEFAULT_BASE_URL = "https://graph.microsoft.com/v1.0"
    ACCEPT = "application/json"
    MAX_PAGES = 100

    def __init__(self, token_source: TokenSource, base_url: str | None = None) -> None:
        """Initialize client with a token source.

        Args:
            token_source: Provider of access tokens for this API's resource
            base_url: Override for DEFAULT_BASE_URL
        """
        self._tokens = token_source
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self, force_refresh: bool = False) -> httpx.AsyncClient:
        """Get or create HTTP client with current auth token."""
        if self._client is None:
            token = await self._tokens.get_access_token(force_refresh=force_refresh)
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": self.ACCEPT,
                    "Content-Type": "application/json",
                },
                timeout=60.0,
            )
        return self._client

    async def _refresh_token(self) -> httpx.AsyncClient:
        """Drop the current client and rebuild it with a refreshed token."""
        if self._client:
            await self._client.aclose()
            self._client = None
        return await self._get_client(force_refresh=True)

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("o365_client_closed", base_url=self.base_url)

    async def __aenter__(self) -> "O365ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        retry_count: int = 3,
        **kwargs: Any,
    ) -> httpx.Response:
        """Make HTTP request with retry and error handling.

        Implements retry logic for:
        - HTTP 401: refresh the token once
        - HTTP 429 (rate limit): Uses Retry-After header
        - HTTP 5xx (server errors): Exponential backoff (1s, 2s, 4s)
        - Connection errors: Exponential backoff

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: API path relative to base_url, or an absolute URL
            retry_count: Maximum number of retries (default: 3)
            **kwargs: Additional arguments for httpx request

        Returns:
            httpx.Response on success

        Raises:
            O365AuthenticationError: On HTTP 401 after refresh
            O365PermissionError: On HTTP 403
            O365NotFoundError: On HTTP 404
            O365RateLimitError: On HTTP 429 after retries exhausted
            O365ApiError: On other errors after retries exhausted
        """
        client = await self._get_client()
        last_exception: Exception | None = None
        refreshed = False

        for attempt in range(retry_count + 1):
            try:
                logger.debug(
                    "o365_request_attempt",
                    method=method,
                    path=path,
                    attempt=attempt + 1,
                    max_attempts=retry_count + 1,
                )

                response = await client.request(method, path, **kwargs)

                if response.status_code == 401:
                    if not refreshed:
                        logger.warning("o365_token_expired_refreshing", path=path)
                        refreshed = True
                        client = await self._refresh_token()
                        continue
                    logger.error(
                        "o365_authentication_error",
                        path=path,
                        status_code=response.status_code,
                    )
                    raise O365AuthenticationError(
                        f"Authentication failed: {response.text}",
                        status_code=401,
                    )

                if response.status_code == 403:
                    logger.error(
                        "o365_permission_error",
                        path=path,
                        status_code=response.status_code,
                    )
                    raise O365PermissionError(
                        f"Permission denied: {response.text}",
                        status_code=403,
                    )

                if response.status_code == 404:
                    logger.warning(
                        "o365_not_found",
                        path=path,
                        status_code=response.status_code,
                    )
                    raise O365NotFoundError(
                        f"Resource not found: {path}",
                        status_code=404,
                    )

                if response.status_code == 429:
                    retry_after = int(response.headers.get("Retry-After", "60"))
                    if attempt < retry_count:
                        logger.warning(
                            "o365_rate_limit_retrying",
                            path=path,
                            retry_after=retry_after,
                            attempt=attempt + 1,
                        )
                        await asyncio.sleep(retry_after)
                        continue
                    logger.error(
                        "o365_rate_limit_exhausted",
                        path=path,
                        retry_after=retry_after,
                    )
                    raise O365RateLimitError(
                        "Rate limit exceeded",
                        retry_after_seconds=retry_after,
                    )

                if response.status_code >= 500:
                    if attempt < retry_count:
                        delay = 2**attempt
                        logger.warning(
                            "o365_server_error_retrying",
                            path=path,
                            status_code=response.status_code,
                            delay=delay,
                            attempt=attempt + 1,
                        )
                        await asyncio.sleep(delay)
                        continue
                    logger.error(
                        "o365_server_error_exhausted",
                        path=path,
                        status_code=response.status_code,
                    )
                    raise O365ApiError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )

                if response.status_code >= 400:
                    logger.error(
                        "o365_client_error",
                        path=path,
                        status_code=response.status_code,
                        response=response.text[:500],
                    )
                    raise O365ApiError(
                        f"API error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )

                logger.debug(
                    "o365_request_success",
                    method=method,
                    path=path,
                    status_code=response.status_code,
                )
                return response

            except httpx.RequestError as e:
                last_exception = e
                if attempt < retry_count:
                    delay = 2**attempt
                    logger.warning(
                        "o365_connection_error_retrying",
                        path=path,
                        error=str(e),
                        delay=delay,
                        attempt=attempt + 1,
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    "o365_connection_error_exhausted",
                    path=path,
                    error=str(e),
                )
                raise O365ApiError(
                    f"Connection error after {retry_count + 1} attempts: {e}"
                ) from e

        raise O365ApiError(
            f"Request failed after {retry_count + 1} attempts"
        ) from last_exception

    async def _get_json(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """GET a JSON document."""
        kwargs: dict[str, Any] = {"params": params}
        if headers:
            kwargs["headers"] = headers
        response = await self._request("GET", path, **kwargs)
        return response.json()

    async def _post_json(
        self,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """POST a JSON body and return the JSON response (empty on 204)."""
        response = await self._request("POST", path, json=payload or {})
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    async def _paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> list[dict[str, Any]]:
        """Collect ``value`` items across every page of an OData collection."""
        items: list[dict[str, Any]] = []
        data = await self._get_json(path, params=params, headers=headers)
        pages = 1

        while True:
            items.extend(data.get("value", []))
            next_link = data.get("@odata.nextLink") or data.get("odata.nextLink")
            if not next_link or pages >= self.MAX_PAGES:
                break
            # nextLink already carries the query string
            data = await self._get_json(next_link, headers=headers)
            pages += 1

        logger.debug("o365_paginate_complete", path=path, pages=pages, count=len(items))
        return items

    async def _get_content(self, path: str) -> bytes:
        """Download raw bytes, following redirects to the content URL."""
        response = await self._request("GET", path, follow_redirects=True)
        return response.content

    async def _put_content(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Upload raw bytes with PUT and return the created item."""
        response = await self._request(
            "PUT",
            path,
            content=content,
            headers={"Content-Type": content_type},
        )
        if not response.content:
            return {}
        return response.json()
