"""OneDrive for Business legacy files API client.

Used for personal files when the Graph ("unified") API is disabled. The
API lives on the tenant's ``-my.sharepoint.com`` host under
``/_api/v1.0/me`` and addresses folders by path rather than by id.
"""

from typing import Any
from urllib.parse import quote

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger
from lms_o365.core.o365.client import O365ApiClient
from lms_o365.core.o365.exceptions import O365ApiError, O365UploadError
from lms_o365.core.o365.tokens import TokenSource

logger = get_logger(__name__)


def _quote_path(path: str) -> str:
    # Single quotes are escaped by doubling inside OData string literals
    return quote(path.replace("'", "''"), safe="/")


class OneDriveClient(O365ApiClient):
    """Personal file operations against the OneDrive for Business API."""

    def __init__(self, token_source: TokenSource, base_url: str | None = None) -> None:
        if base_url is None:
            base_url = f"https://{get_settings().odb_url}/_api/v1.0/me"
        super().__init__(token_source, base_url=base_url)

    async def get_contents(self, path: str = "/") -> dict[str, Any]:
        """List the contents of a folder addressed by path.

        Args:
            path: Folder path relative to the drive root; "/" for the root

        Returns:
            ``{"value": [...]}`` where each item has ``type`` Folder or File
        """
        path = (path or "/").strip("/")
        if not path:
            endpoint = "/files/root/children"
        else:
            endpoint = f"/files/getByPath('{_quote_path(path)}')/children"
        items = await self._paginate(endpoint)
        return {"value": items}

    async def get_file_metadata(self, file_id: str) -> dict[str, Any]:
        """Get a file's metadata, including webUrl."""
        return await self._get_json(f"/files/{file_id}")

    async def get_file_by_id(self, file_id: str) -> bytes:
        """Download a file's content."""
        return await self._get_content(f"/files/{file_id}/content")

    async def create_file(
        self,
        path: str,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Upload a file into the folder at ``path``.

        Raises:
            O365UploadError: If the upload is rejected
        """
        folder = (path or "/").strip("/")
        target = f"{folder}/{filename}" if folder else filename
        endpoint = f"/files/getByPath('{_quote_path(target)}')/content?nameConflict=overwrite"

        logger.info("onedrive_upload_start", path=folder or "/", filename=filename)
        try:
            result = await self._put_content(endpoint, content, content_type)
        except O365ApiError as e:
            raise O365UploadError(
                f"Failed to upload {filename}: {e}", filename=filename
            ) from e

        logger.info("onedrive_upload_success", filename=filename, file_id=result.get("id"))
        return result

    async def get_embed_url(self, file_url: str) -> dict[str, Any]:
        """Build the embeddable view of a document from its web URL.

        Returns:
            ``{"value": url}``, empty when no URL is known
        """
        if not file_url:
            return {"value": ""}
        separator = "&" if "?" in file_url else "?"
        return {"value": f"{file_url}{separator}action=embedview"}
