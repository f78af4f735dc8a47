"""SharePoint REST client for course sites and Office 365 Video.

Course files live in SharePoint subsites of the parent site configured by
``SHAREPOINT_LINK``. The client starts out pointed at the tenant root and is
re-pointed at a site with ``set_site`` before file calls.

Office 365 Video is a SharePoint application discovered through
``VideoService.Discover``; ``override_resource`` points the client at the
video portal before any channel or video call.
"""

from typing import Any
from urllib.parse import quote, urlparse

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger, o365_debug
from lms_o365.core.o365.client import O365ApiClient
from lms_o365.core.o365.exceptions import O365ApiError, O365UploadError
from lms_o365.core.o365.onedrive import _quote_path
from lms_o365.core.o365.tokens import TokenSource

logger = get_logger(__name__)

VIDEO_ITEM_TYPE = "SP.Publishing.VideoItem"


class SharePointClient(O365ApiClient):
    """SharePoint site files and Office 365 Video channels.

    Attributes:
        resource: Tenant SharePoint root, e.g. ``https://contoso.sharepoint.com``
        site: Current site path relative to the resource, without slashes
    """

    # Short OData keys such as "odata.type" and "odata.id"
    ACCEPT = "application/json;odata=minimalmetadata"

    def __init__(self, token_source: TokenSource, resource: str | None = None) -> None:
        self.resource = (resource or get_settings().sharepoint_resource).rstrip("/")
        self.site = ""
        super().__init__(token_source, base_url=f"{self.resource}/_api")

    def _set_base_url(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")
        if self._client is not None:
            self._client.base_url = self.base_url

    def set_site(self, uri: str) -> None:
        """Point the client at a site.

        Args:
            uri: Site path relative to the tenant root, or an absolute site URL
        """
        if uri.startswith("http://") or uri.startswith("https://"):
            parsed = urlparse(uri)
            uri = parsed.path
        self.site = uri.strip("/")
        site_url = f"{self.resource}/{self.site}" if self.site else self.resource
        self._set_base_url(f"{site_url}/_api")
        logger.debug("sharepoint_site_set", site=self.site or "/")

    def get_moodle_parent_site_uri(self) -> str:
        """Get the parent site's path, relative to the tenant root."""
        link = get_settings().sharepoint_link
        if not link:
            return ""
        return urlparse(link).path.strip("/")

    async def get_files(self, path: str = "/") -> dict[str, Any]:
        """List a folder of the current site's document library.

        Returns:
            ``{"value": [...]}`` where each item has ``type`` Folder or File
        """
        path = (path or "/").strip("/")
        if not path:
            endpoint = "/v1.0/files/root/children"
        else:
            endpoint = f"/v1.0/files/getByPath('{_quote_path(path)}')/children"
        items = await self._paginate(endpoint)
        return {"value": items}

    async def get_file_metadata(self, file_id: str) -> dict[str, Any]:
        return await self._get_json(f"/v1.0/files/{file_id}")

    async def get_file_by_id(self, file_id: str) -> bytes:
        return await self._get_content(f"/v1.0/files/{file_id}/content")

    async def create_file(
        self,
        path: str,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Upload a file into a folder of the current site.

        Raises:
            O365UploadError: If the upload is rejected
        """
        folder = (path or "/").strip("/")
        target = f"{folder}/{filename}" if folder else filename
        endpoint = (
            f"/v1.0/files/getByPath('{_quote_path(target)}')/content"
            "?nameConflict=overwrite"
        )

        logger.info(
            "sharepoint_upload_start",
            site=self.site or "/",
            path=folder or "/",
            filename=filename,
        )
        try:
            result = await self._put_content(endpoint, content, content_type)
        except O365ApiError as e:
            raise O365UploadError(
                f"Failed to upload {filename}: {e}", filename=filename
            ) from e

        logger.info("sharepoint_upload_success", filename=filename, file_id=result.get("id"))
        return result

    async def get_embed_url(self, file_url: str) -> dict[str, Any]:
        """Build the embeddable view of a document from its web URL."""
        if not file_url:
            return {"value": ""}
        separator = "&" if "?" in file_url else "?"
        return {"value": f"{file_url}{separator}action=embedview"}

    # Office 365 Video

    async def videoservice_discover(self) -> str:
        """Find the video portal URL.

        Returns:
            The portal URL, or "" when the tenant has no enabled video portal
        """
        try:
            response = await self._request(
                "GET", f"{self.resource}/_api/VideoService.Discover"
            )
        except O365ApiError as e:
            o365_debug("Video service discovery failed", "videoservice_discover", e)
            return ""

        data = response.json()
        if data.get("IsVideoPortalEnabled") is False:
            return ""
        return data.get("VideoPortalUrl") or ""

    def override_resource(self, url: str) -> None:
        """Point the client at the video portal found by discovery."""
        self._set_base_url(f"{url.rstrip('/')}/_api")
        logger.debug("sharepoint_resource_overridden", url=url)

    async def get_video_channels(self) -> dict[str, Any]:
        items = await self._paginate("/VideoService/Channels")
        return {"value": items}

    async def get_video_channel(self, channel_id: str) -> dict[str, Any]:
        return await self._get_json(f"/VideoService/Channels('{quote(channel_id)}')")

    async def get_all_channel_videos(self, channel_id: str) -> dict[str, Any]:
        items = await self._paginate(
            f"/VideoService/Channels('{quote(channel_id)}')/GetAllVideos"
        )
        return {"value": items}

    async def create_video_placeholder(
        self,
        channel_id: str,
        title: str,
        description: str,
        filename: str,
    ) -> dict[str, Any]:
        """Create the video item that an upload's bytes are attached to.

        Returns:
            The video item, including ID, ChannelID, Url and ServerRelativeUrl
        """
        payload = {
            "odata.type": VIDEO_ITEM_TYPE,
            "Title": title,
            "Description": description,
            "FileName": filename,
        }
        return await self._post_json(
            f"/VideoService/Channels('{quote(channel_id)}')/Videos", payload
        )

    async def upload_video(
        self,
        channel_id: str,
        video_id: str,
        content: bytes,
    ) -> bool:
        """Upload the bytes for a video placeholder.

        Raises:
            O365UploadError: If the upload is rejected
        """
        endpoint = (
            f"/VideoService/Channels('{quote(channel_id)}')"
            f"/Videos('{quote(video_id)}')/GetFile()/SaveBinaryStream"
        )
        logger.info(
            "video_upload_start",
            channel_id=channel_id,
            video_id=video_id,
            size=len(content),
        )
        try:
            await self._request(
                "POST",
                endpoint,
                content=content,
                headers={"Content-Type": "application/octet-stream"},
            )
        except O365ApiError as e:
            raise O365UploadError(
                f"Failed to upload video {video_id}: {e}", filename=video_id
            ) from e

        logger.info("video_upload_success", channel_id=channel_id, video_id=video_id)
        return True

    async def get_video_file(self, download_url: str) -> bytes:
        """Download a video through its absolute download URL."""
        return await self._get_content(download_url)
