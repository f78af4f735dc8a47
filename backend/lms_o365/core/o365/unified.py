"""OneDrive, group drive and insights operations via Microsoft Graph.

The "unified" API is the Graph endpoint used for a user's own OneDrive
(``/me/drive``), Office 365 group drives (``/groups/{id}/drive``) and the
trending-documents insight.
"""

from typing import Any
from urllib.parse import quote

import httpx

from lms_o365.core.logging import get_logger
from lms_o365.core.o365.client import O365ApiClient
from lms_o365.core.o365.exceptions import O365ApiError, O365UploadError

logger = get_logger(__name__)


def _children_path(drive_root: str, parent_id: str) -> str:
    parent_id = (parent_id or "").strip("/")
    if not parent_id:
        return f"{drive_root}/root/children"
    return f"{drive_root}/items/{parent_id}/children"


class UnifiedClient(O365ApiClient):
    """Microsoft Graph file operations for a user."""

    async def get_files(self, parent_id: str = "") -> dict[str, Any]:
        """List the children of a OneDrive folder (root when empty)."""
        items = await self._paginate(_children_path("/me/drive", parent_id))
        return {"value": items}

    async def get_file_metadata(self, item_id: str) -> dict[str, Any]:
        """Get drive item metadata, including parentReference."""
        return await self._get_json(f"/me/drive/items/{item_id}")

    async def get_file_by_id(self, item_id: str) -> bytes:
        """Download a OneDrive file's content."""
        return await self._get_content(f"/me/drive/items/{item_id}/content")

    async def create_file(
        self,
        parent_id: str,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Upload a file into a OneDrive folder (root when parent_id is empty).

        Raises:
            O365UploadError: If the upload is rejected
        """
        parent_id = (parent_id or "").strip("/")
        name = quote(filename)
        if parent_id:
            path = f"/me/drive/items/{parent_id}:/{name}:/content"
        else:
            path = f"/me/drive/root:/{name}:/content"

        logger.info(
            "unified_upload_start",
            parent_id=parent_id or "root",
            filename=filename,
            size=len(content),
        )
        try:
            result = await self._put_content(path, content, content_type)
        except O365ApiError as e:
            raise O365UploadError(
                f"Failed to upload {filename}: {e}", filename=filename
            ) from e

        logger.info("unified_upload_success", filename=filename, item_id=result.get("id"))
        return result

    async def get_group_files(
        self, group_id: str, parent_id: str = ""
    ) -> dict[str, Any]:
        """List the children of a folder in an Office 365 group's drive."""
        items = await self._paginate(
            _children_path(f"/groups/{group_id}/drive", parent_id)
        )
        return {"value": items}

    async def get_group_file_metadata(
        self, group_id: str, item_id: str
    ) -> dict[str, Any]:
        """Get metadata for an item in a group drive."""
        return await self._get_json(f"/groups/{group_id}/drive/items/{item_id}")

    async def get_group_file_by_id(self, group_id: str, item_id: str) -> bytes:
        """Download a file from a group drive."""
        return await self._get_content(
            f"/groups/{group_id}/drive/items/{item_id}/content"
        )

    async def get_trending_files(self) -> dict[str, Any]:
        """Get documents trending around the user."""
        items = await self._paginate("/me/insights/trending")
        return {"value": items}

    async def get_file_data(self, resource_id: str) -> dict[str, Any]:
        """Get a drive item addressed by an insight resourceReference id.

        Insight ids look like ``drives/{drive-id}/items/{item-id}``.
        """
        return await self._get_json(f"/{resource_id.lstrip('/')}")

    async def get_file_by_url(self, url: str) -> bytes:
        """Download from a pre-authenticated download URL.

        Download URLs carry their own authorization, so they are fetched
        without the bearer token.
        """
        try:
            async with httpx.AsyncClient(timeout=120.0) as client:
                response = await client.get(url, follow_redirects=True)
        except httpx.RequestError as e:
            raise O365ApiError(f"Download failed: {e}") from e

        if response.status_code >= 400:
            raise O365ApiError(
                f"Download failed with status {response.status_code}",
                status_code=response.status_code,
            )
        return response.content

    async def _create_view_link(self, path: str) -> str | None:
        data = await self._post_json(
            f"{path}/createLink",
            {"type": "view", "scope": "organization"},
        )
        return (data.get("link") or {}).get("webUrl")

    async def get_sharing_link(self, item_id: str) -> str | None:
        """Create (or reuse) an organization view link for a OneDrive item."""
        return await self._create_view_link(f"/me/drive/items/{item_id}")

    async def get_group_sharing_link(self, group_id: str, item_id: str) -> str | None:
        """Create (or reuse) an organization view link for a group drive item."""
        return await self._create_view_link(f"/groups/{group_id}/drive/items/{item_id}")

    async def get_embed_url(self, item_id: str) -> dict[str, Any]:
        """Get an embeddable preview URL for a OneDrive item.

        Returns:
            ``{"value": url}``, matching the legacy clients' shape
        """
        data = await self._post_json(f"/me/drive/items/{item_id}/preview")
        return {"value": data.get("getUrl")}
