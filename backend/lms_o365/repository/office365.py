"""Office 365 file repository.

Browses, uploads and downloads files across the Office 365 stores a user
can reach:

- ``/my/``: personal OneDrive, through Graph when enabled, else the legacy
  OneDrive for Business API
- ``/courses/``: SharePoint document libraries of the user's course sites
- ``/groups/``: drives of the Office 365 groups of the user's courses
- ``/trending/``: documents trending around the user (Graph insights)
- ``/office365video/``: Office 365 Video channels

Paths below each prefix are client specific: Graph folders are addressed
by item id, the legacy APIs by folder name. A path ending in ``/upload/``
is an upload target inside the folder before it.
"""

from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.config import get_settings
from lms_o365.core.exceptions import (
    AccessDeniedError,
    BadClientTypeError,
    BadPathError,
    DownloadError,
    FileReferenceNotFoundError,
    O365RequiredError,
    RepositoryNotConfiguredError,
)
from lms_o365.core.logging import get_logger, o365_debug
from lms_o365.core.o365.client import O365ApiClient
from lms_o365.core.o365.exceptions import O365ApiError
from lms_o365.core.o365.onedrive import OneDriveClient
from lms_o365.core.o365.sharepoint import SharePointClient
from lms_o365.core.o365.tokens import TokenManager, TokenSource
from lms_o365.core.o365.unified import UnifiedClient
from lms_o365.core.permissions import get_user_courses
from lms_o365.core.storage import StorageBackend, get_storage
from lms_o365.models.course import Course, CourseGroup, CourseGroupMember
from lms_o365.models.o365 import O365Object, ObjectSubtype, ObjectType
from lms_o365.models.user import User
from lms_o365.repository.listing import (
    FOLDER_ICON,
    contents_api_response_to_list,
    path_is_upload,
    strip_upload,
    video_urls,
)
from lms_o365.repository.references import pack_reference, unpack_reference
from lms_o365.schemas.repository import (
    Breadcrumb,
    DownloadedFile,
    RepositoryItem,
    RepositoryListing,
    UploadDescriptor,
    UploadResult,
)
from lms_o365.services.cache_service import RepositoryCache, get_repository_cache
from lms_o365.services.config_service import ConfigService
from lms_o365.services.sharepoint_custom import SharePointCustomService
from lms_o365.services.usergroups import UserGroupsService
from lms_o365.strings import get_string

logger = get_logger(__name__)

COMPONENT = "repository_office365"
EMBEDDABLE_SOURCES = ("onedrive", "sharepoint")


def _str(identifier: str) -> str:
    return get_string(identifier, COMPONENT)


def _parts(path: str) -> list[str]:
    return [part for part in path.strip("/").split("/") if part]


def clean_filename(filename: str) -> str:
    """Reduce a client supplied name to a bare file name."""
    name = Path(filename.replace("\\", "/")).name.strip()
    return "".join(ch for ch in name if ch.isprintable()) or "file"


class Office365Repository:
    """File picker backend for one user."""

    def __init__(
        self,
        db: AsyncSession,
        user: User,
        token_manager: TokenManager | None = None,
        cache: RepositoryCache | None = None,
        storage: StorageBackend | None = None,
    ):
        self.db = db
        self.user = user
        self.settings = get_settings()
        self.tokens = token_manager or TokenManager(db)
        self.cache = cache or get_repository_cache()
        self.storage = storage or get_storage()
        self.name = _str("pluginname")
        self.unifiedconfigured = self.settings.is_unified_configured
        self.onedriveconfigured = self.settings.is_onedrive_configured
        self.sharepointconfigured = self.settings.is_sharepoint_configured
        self.usergroups = UserGroupsService(db)
        self.sharepointcustom = SharePointCustomService(db)
        self._clients: list[O365ApiClient] = []

    async def close(self) -> None:
        for client in self._clients:
            await client.close()
        self._clients = []

    async def __aenter__(self) -> "Office365Repository":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # API clients

    def _token_source(self, resource: str, user_id: int | None = None) -> TokenSource:
        return TokenSource(self.tokens, resource, user_id=user_id or self.user.id)

    def get_unified_apiclient(self, user_id: int | None = None) -> UnifiedClient:
        client = UnifiedClient(
            self._token_source(self.settings.graph_resource, user_id),
            base_url=self.settings.graph_base_url,
        )
        self._clients.append(client)
        return client

    def get_onedrive_apiclient(self, user_id: int | None = None) -> OneDriveClient:
        client = OneDriveClient(self._token_source(self.settings.onedrive_resource, user_id))
        self._clients.append(client)
        return client

    def get_sharepoint_apiclient(self, user_id: int | None = None) -> SharePointClient:
        client = SharePointClient(self._token_source(self.settings.sharepoint_resource, user_id))
        self._clients.append(client)
        return client

    async def _is_active(self, configured: bool, resource: str) -> bool:
        if not configured:
            return False
        return await self.tokens.get_user_token(self.user.id, resource) is not None

    async def is_o365_connected(self, user_id: int | None = None) -> bool:
        return await self.tokens.has_token(user_id or self.user.id, self.settings.graph_resource)

    # Listing

    def _base_breadcrumb(self) -> list[Breadcrumb]:
        return [Breadcrumb(name=self.name, path="/")]

    async def _show_groups(self, courses: dict[int, Course]) -> bool:
        if not self.unifiedconfigured:
            return False
        for course_id in courses:
            if await self.usergroups.course_is_group_enabled(course_id) and (
                await self.usergroups.course_is_group_feature_enabled(course_id, "onedrive")
            ):
                return True
        return False

    async def get_listing(
        self,
        path: str = "",
        client_id: str = "",
        course_id: int | None = None,
    ) -> RepositoryListing:
        """List a repository path.

        Args:
            path: Repository path; "" or "/" for the root
            client_id: File picker instance, remembered for uploads
            course_id: Course the picker was opened from

        Raises:
            RepositoryNotConfiguredError: If Office 365 is not configured
            BadPathError: If a course or group path is invalid
        """
        if not await ConfigService(self.db).is_configured():
            raise RepositoryNotConfiguredError()

        if client_id:
            await self.cache.set_current_path(self.user.id, client_id, path)

        if (
            self.sharepointconfigured
            and course_id is not None
            and not path
            and await self.sharepointcustom.course_is_sharepoint_enabled(course_id)
        ):
            path = f"/courses/{course_id}"

        items: list[RepositoryItem] = []
        breadcrumb = self._base_breadcrumb()

        unifiedactive = await self._is_active(self.unifiedconfigured, self.settings.graph_resource)
        onedriveactive = await self._is_active(
            self.onedriveconfigured, self.settings.onedrive_resource
        )
        sharepointactive = await self._is_active(
            self.sharepointconfigured, self.settings.sharepoint_resource
        )

        courses = await get_user_courses(self.db, self.user.id)
        showgroups = await self._show_groups(courses)

        if path.startswith("/my/"):
            if unifiedactive:
                items, breadcrumb = await self.get_listing_my_unified(path[3:])
            elif onedriveactive:
                items, breadcrumb = await self.get_listing_my(path[3:])
        elif path.startswith("/courses/"):
            if sharepointactive:
                items, breadcrumb = await self.get_listing_course(path[8:], courses)
        elif path.startswith("/groups/"):
            if showgroups:
                items, breadcrumb = await self.get_listing_groups(path[7:], courses)
        elif path.startswith("/trending/"):
            if unifiedactive:
                items, breadcrumb = await self.get_listing_trending_unified(path[9:])
        elif path.startswith("/office365video/"):
            if sharepointactive:
                items, breadcrumb = await self.get_listing_videos(path[15:])
        else:
            items = await self._root_items(unifiedactive, onedriveactive, sharepointactive, showgroups)

        if path_is_upload(path):
            return RepositoryListing(
                path=breadcrumb,
                upload=UploadDescriptor(label=_str("file"), id=strip_upload(path)),
            )
        return RepositoryListing(items=items, path=breadcrumb)

    async def _root_items(
        self,
        unifiedactive: bool,
        onedriveactive: bool,
        sharepointactive: bool,
        showgroups: bool,
    ) -> list[RepositoryItem]:
        items = []
        if unifiedactive or onedriveactive:
            items.append(
                RepositoryItem(title=_str("myfiles"), path="/my/", thumbnail="onedrive", children=[])
            )
        if sharepointactive:
            items.append(
                RepositoryItem(
                    title=_str("courses"), path="/courses/", thumbnail="sharepoint", children=[]
                )
            )
            if await self.get_sharepoint_apiclient().videoservice_discover():
                items.append(
                    RepositoryItem(
                        title=_str("office365video"),
                        path="/office365video/",
                        thumbnail="office365video",
                        children=[],
                    )
                )
        if showgroups:
            items.append(
                RepositoryItem(
                    title=_str("groups"), path="/groups/", thumbnail="coursegroups", children=[]
                )
            )
        if unifiedactive:
            items.append(
                RepositoryItem(
                    title=_str("trendingaround"), path="/trending/", thumbnail="delve", children=[]
                )
            )
        return items

    async def _folder_breadcrumbs(
        self,
        metadata: dict[str, Any],
        scope: str,
        prefix: str,
    ) -> list[Breadcrumb]:
        """Breadcrumbs for a Graph folder, from its parentReference path.

        Parent folders are only known by name, so every visited folder's id
        is cached by its drive path and looked up again here.
        """
        crumbs = []
        parent_path = (metadata.get("parentReference") or {}).get("path") or ""
        if parent_path:
            parentrefpath = parent_path.split(":", 1)[1] if ":" in parent_path else parent_path
            await self.cache.set_folder_id(
                self.user.id,
                scope,
                f"{parentrefpath}/{metadata.get('name', '')}",
                metadata.get("id", ""),
            )
            current = ""
            for folder in _parts(parentrefpath):
                current += f"/{folder}"
                folder_id = await self.cache.get_folder_id(self.user.id, scope, current)
                crumbs.append(Breadcrumb(name=folder, path=f"{prefix}{folder_id or ''}"))
        crumbs.append(
            Breadcrumb(name=metadata.get("name", ""), path=f"{prefix}{metadata.get('id', '')}")
        )
        return crumbs

    async def _user_course_groups(self, course_id: int) -> dict[int, CourseGroup]:
        result = await self.db.execute(
            select(CourseGroup)
            .join(CourseGroupMember, CourseGroupMember.group_id == CourseGroup.id)
            .where(
                CourseGroupMember.user_id == self.user.id,
                CourseGroup.course_id == course_id,
            )
            .order_by(CourseGroup.id)
        )
        return {group.id: group for group in result.scalars().all()}

    async def _group_object(self, subtype: ObjectSubtype, moodleid: int) -> O365Object | None:
        result = await self.db.execute(
            select(O365Object).where(
                O365Object.type == ObjectType.GROUP.value,
                O365Object.subtype == subtype.value,
                O365Object.moodleid == moodleid,
            )
        )
        return result.scalars().first()

    async def get_listing_groups(
        self,
        path: str,
        courses: dict[int, Course],
    ) -> tuple[list[RepositoryItem], list[Breadcrumb]]:
        """List course group drives.

        Paths are ``/`` (courses), ``/{courseid}`` (the course's groups),
        ``/{courseid}/coursegroup/...`` (the course-wide group drive) and
        ``/{courseid}/{groupid}/...`` (a course group's drive).
        """
        items: list[RepositoryItem] = []
        breadcrumb = self._base_breadcrumb() + [Breadcrumb(name=_str("groups"), path="/groups/")]

        if path == "/":
            enabled = await self.usergroups.get_enabled_courses_with_feature("onedrive")
            for course in courses.values():
                if course.id in enabled:
                    items.append(
                        RepositoryItem(
                            title=course.shortname,
                            path=f"/groups/{course.id}",
                            thumbnail=FOLDER_ICON,
                            children=[],
                        )
                    )
            return items, breadcrumb

        parts = path.strip("/").split("/")
        if (
            not parts[0].isdigit()
            or int(parts[0]) not in courses
            or not await self.usergroups.course_is_group_enabled(int(parts[0]))
            or not await self.usergroups.course_is_group_feature_enabled(int(parts[0]), "onedrive")
        ):
            o365_debug(_str("errorbadpath"), "get_listing_groups", {"path": path})
            raise BadPathError()

        course_id = int(parts[0])
        curpath = f"/groups/{course_id}"
        breadcrumb.append(Breadcrumb(name=courses[course_id].shortname, path=curpath))
        coursegroups = await self._user_course_groups(course_id)

        if len(parts) == 1:
            items.append(
                RepositoryItem(
                    title=_str("defaultgroupsfolder"),
                    path=f"{curpath}/coursegroup/",
                    thumbnail=FOLDER_ICON,
                    children=[],
                )
            )
            for group in coursegroups.values():
                items.append(
                    RepositoryItem(
                        title=group.name,
                        path=f"{curpath}/{group.id}/",
                        thumbnail=FOLDER_ICON,
                        children=[],
                    )
                )
            return items, breadcrumb

        if not parts[1].isdigit() and parts[1] != "coursegroup":
            o365_debug(_str("errorbadpath"), "get_listing_groups", {"path": path})
            raise BadPathError()

        curpath += f"/{parts[1]}/"
        if parts[1] == "coursegroup":
            breadcrumb.append(Breadcrumb(name=_str("defaultgroupsfolder"), path=curpath))
            group_object = await self._group_object(ObjectSubtype.COURSE, course_id)
        else:
            group_id = int(parts[1])
            if group_id not in coursegroups:
                o365_debug(_str("errorbadpath"), "get_listing_groups", {"path": path})
                raise BadPathError()
            breadcrumb.append(Breadcrumb(name=coursegroups[group_id].name, path=curpath))
            group_object = await self._group_object(ObjectSubtype.USERGROUP, group_id)

        if group_object is None:
            o365_debug("Could not find group object record", "get_listing_groups", {"path": path})
            return [], breadcrumb

        curparent = parts[-1].strip() if len(parts) > 2 else ""
        unified = self.get_unified_apiclient()
        if curparent:
            metadata = await unified.get_group_file_metadata(group_object.objectid, curparent)
            breadcrumb.extend(
                await self._folder_breadcrumbs(metadata, group_object.objectid, curpath)
            )
        contents = await unified.get_group_files(group_object.objectid, curparent)
        items = contents_api_response_to_list(
            contents, path, "unifiedgroup", group_object.objectid, addupload=False
        )
        return items, breadcrumb

    async def get_listing_course(
        self,
        path: str,
        courses: dict[int, Course],
    ) -> tuple[list[RepositoryItem], list[Breadcrumb]]:
        """List course SharePoint sites (``/``) or a folder in one (``/{courseid}/...``)."""
        items: list[RepositoryItem] = []
        breadcrumb = self._base_breadcrumb() + [Breadcrumb(name=_str("courses"), path="/courses/")]

        if path == "/":
            for course in courses.values():
                items.append(
                    RepositoryItem(
                        title=course.shortname,
                        path=f"/courses/{course.id}",
                        thumbnail=FOLDER_ICON,
                        children=[],
                    )
                )
            return items, breadcrumb

        parts = path.strip("/").split("/")
        if not parts[0].isdigit():
            o365_debug(_str("errorbadpath"), "get_listing_course", {"path": path})
            raise BadPathError()

        course_id = int(parts[0])
        relparts = parts[1:]
        if course_id not in courses:
            return items, breadcrumb

        if not path_is_upload(path):
            sharepoint = self.get_sharepoint_apiclient()
            parentsiteuri = await self.sharepointcustom.get_course_subsite_uri(course_id)
            sharepoint.set_site(parentsiteuri)
            relpath = "/".join(relparts)
            fullpath = f"/{relpath}" if relpath else "/"
            try:
                contents = await sharepoint.get_files(fullpath)
                items = contents_api_response_to_list(contents, path, "sharepoint", parentsiteuri)
            except O365ApiError as e:
                o365_debug(
                    "Exception when retrieving share point files",
                    "get_listing_course",
                    {"fullpath": fullpath, "message": str(e)},
                )
                items = []

        curpath = f"/courses/{course_id}"
        breadcrumb.append(Breadcrumb(name=courses[course_id].shortname, path=curpath))
        for i, part in enumerate(relparts, start=1):
            if not part:
                continue
            curpath += f"/{part}"
            name = _str("upload") if i == len(relparts) and part == "upload" else part
            breadcrumb.append(Breadcrumb(name=name, path=curpath))
        return items, breadcrumb

    async def get_listing_videos(self, path: str) -> tuple[list[RepositoryItem], list[Breadcrumb]]:
        """List Office 365 Video channels (``/``) or a channel's videos (``/{channelid}``)."""
        path = path or "/"
        items: list[RepositoryItem] = []
        channel: dict[str, Any] | None = None

        sharepoint = self.get_sharepoint_apiclient()
        url = await sharepoint.videoservice_discover()
        if url:
            sharepoint.override_resource(url)
            if path_is_upload(path):
                path = strip_upload(path)
            elif path == "/":
                contents = await sharepoint.get_video_channels()
                items = contents_api_response_to_list(contents, path, "office365video", addupload=False)
            else:
                contents = await sharepoint.get_all_channel_videos(path[1:])
                items = contents_api_response_to_list(contents, path, "office365video", addupload=True)
            if path not in ("/", ""):
                channel = await sharepoint.get_video_channel(path[1:])

        breadcrumb = self._base_breadcrumb() + [
            Breadcrumb(name=_str("office365video"), path="/office365video/")
        ]
        parts = _parts(path)
        curpath = "/office365video"
        if channel and parts:
            breadcrumb.append(Breadcrumb(name=channel.get("Title", ""), path=f"{curpath}/{parts[0]}"))
            parts = parts[1:]
        for i, part in enumerate(parts):
            curpath += f"/{part}"
            name = _str("upload") if i == len(parts) - 1 and part == "upload" else part
            breadcrumb.append(Breadcrumb(name=name, path=curpath))
        return items, breadcrumb

    async def get_listing_my_unified(
        self, path: str
    ) -> tuple[list[RepositoryItem], list[Breadcrumb]]:
        """List a personal OneDrive folder through Graph (``/`` or ``/{itemid}``)."""
        path = path or "/"
        items: list[RepositoryItem] = []
        unified = self.get_unified_apiclient()

        realpath = strip_upload(path) or "/"
        if not path_is_upload(path):
            contents = await unified.get_files(realpath)
            items = contents_api_response_to_list(contents, realpath, "unified")

        breadcrumb = self._base_breadcrumb() + [Breadcrumb(name=_str("myfiles"), path="/my/")]
        metadata: dict[str, Any] = {}
        if realpath != "/":
            metadata = await unified.get_file_metadata(realpath.strip("/"))
            breadcrumb.extend(await self._folder_breadcrumbs(metadata, "my", "/my/"))

        if path_is_upload(path):
            folder_id = metadata.get("id")
            upload_path = f"/my/{folder_id}/upload/" if folder_id else "/my/upload/"
            breadcrumb.append(Breadcrumb(name=_str("upload"), path=upload_path))
        return items, breadcrumb

    async def get_listing_my(self, path: str) -> tuple[list[RepositoryItem], list[Breadcrumb]]:
        """List a personal OneDrive folder through the legacy API (``/folder/sub``)."""
        path = path or "/"
        items: list[RepositoryItem] = []
        if not path_is_upload(path):
            contents = await self.get_onedrive_apiclient().get_contents(path)
            items = contents_api_response_to_list(contents, path, "onedrive")

        breadcrumb = self._base_breadcrumb() + [Breadcrumb(name=_str("myfiles"), path="/my/")]
        parts = _parts(path)
        curpath = "/my"
        for i, part in enumerate(parts):
            curpath += f"/{part}"
            name = _str("upload") if i == len(parts) - 1 and part == "upload" else part
            breadcrumb.append(Breadcrumb(name=name, path=curpath))
        return items, breadcrumb

    async def get_listing_trending_unified(
        self, path: str
    ) -> tuple[list[RepositoryItem], list[Breadcrumb]]:
        realpath = path or "/"
        contents = await self.get_unified_apiclient().get_trending_files()
        items = contents_api_response_to_list(contents, realpath, "trendingaround", addupload=False)
        breadcrumb = self._base_breadcrumb() + [
            Breadcrumb(name=_str("trendingaround"), path="/trending/")
        ]
        return items, breadcrumb

    # Upload

    async def upload(self, filename: str, content: bytes, client_id: str = "") -> UploadResult:
        """Upload a file into the folder the client last listed.

        Raises:
            BadClientTypeError: If the client's folder cannot take uploads
            BadPathError: If a course folder has no numeric course id
            AccessDeniedError: If the user is not enrolled in the course
        """
        caller = "upload"
        curpath = await self.cache.get_current_path(self.user.id, client_id) if client_id else None
        curpath = curpath or "/"

        if curpath.startswith("/my/"):
            clienttype = "onedrive"
            filepath = curpath[3:]
        elif curpath.startswith("/courses/"):
            clienttype = "sharepoint"
            filepath = curpath[8:]
        elif curpath.startswith("/office365video/"):
            clienttype = "office365video"
            filepath = curpath[15:]
        else:
            o365_debug(_str("errorbadclienttype"), caller, {"filepath": curpath})
            raise BadClientTypeError()

        filepath = strip_upload(filepath)
        filename = clean_filename(filename)
        url = None

        if clienttype == "onedrive":
            if self.unifiedconfigured:
                parentid = filepath[1:] if filepath else ""
                result = await self.get_unified_apiclient().create_file(
                    parentid, filename, content, "application/octet-stream"
                )
            else:
                result = await self.get_onedrive_apiclient().create_file(
                    filepath or "/", filename, content
                )
            source = pack_reference({"id": result.get("id"), "source": "onedrive"})

        elif clienttype == "sharepoint":
            parts = filepath.strip("/").split("/")
            if not parts[0].isdigit():
                o365_debug(_str("errorbadpath"), caller, {"filepath": filepath})
                raise BadPathError()
            course_id = int(parts[0])
            relpath = "/".join(parts[1:])
            fullpath = f"/{relpath}" if relpath else "/"
            courses = await get_user_courses(self.db, self.user.id)
            if course_id not in courses:
                o365_debug(
                    _str("erroraccessdenied"),
                    caller,
                    {"courseid": course_id, "filepath": filepath},
                )
                raise AccessDeniedError()

            sharepoint = self.get_sharepoint_apiclient()
            parentsiteuri = await self.sharepointcustom.get_course_subsite_uri(course_id)
            sharepoint.set_site(parentsiteuri)
            result = await sharepoint.create_file(fullpath, filename, content)
            source = pack_reference(
                {"id": result.get("id"), "source": "sharepoint", "parentsiteuri": parentsiteuri}
            )

        else:
            sharepoint = self.get_sharepoint_apiclient()
            portal = await sharepoint.videoservice_discover() if self.sharepointconfigured else ""
            if not portal:
                o365_debug("Video service is not available.", caller, {"filepath": filepath})
                raise BadClientTypeError()
            sharepoint.override_resource(portal)
            parentid = filepath[1:] if filepath else ""
            video = await sharepoint.create_video_placeholder(parentid, filename, "", filename)
            await sharepoint.upload_video(video["ChannelID"], video["ID"], content)
            url, downloadurl = video_urls(video)
            source = pack_reference(
                {
                    "id": video.get("odata.id"),
                    "source": "office365video",
                    "url": url,
                    "downloadurl": downloadurl,
                }
            )

        downloaded = await self.get_file(source, filename)
        logger.info(
            "repository_file_uploaded",
            user_id=self.user.id,
            clienttype=clienttype,
            filename=filename,
        )
        return UploadResult(filename=filename, source=source, path=downloaded.path, url=url)

    # Download and references

    async def get_file(self, reference: str, filename: str = "") -> DownloadedFile:
        """Download the referenced file into storage.

        Raises:
            DownloadError: If the file cannot be fetched or is empty
        """
        caller = "get_file"
        unpacked = unpack_reference(reference)
        source = unpacked.get("source")
        content = b""

        try:
            if source == "onedrive":
                if self.unifiedconfigured:
                    content = await self.get_unified_apiclient().get_file_by_id(unpacked["id"])
                else:
                    content = await self.get_onedrive_apiclient().get_file_by_id(unpacked["id"])
            elif source == "onedrivegroup":
                if not self.unifiedconfigured:
                    o365_debug(
                        "Tried to access a onedrive group file while the graph api is disabled.",
                        caller,
                    )
                    raise DownloadError()
                content = await self.get_unified_apiclient().get_group_file_by_id(
                    unpacked["groupid"], unpacked["id"]
                )
            elif source == "sharepoint":
                sharepoint = self.get_sharepoint_apiclient()
                sharepoint.set_site(
                    unpacked.get("parentsiteuri") or sharepoint.get_moodle_parent_site_uri()
                )
                content = await sharepoint.get_file_by_id(unpacked["id"])
            elif source == "trendingaround":
                if not self.unifiedconfigured:
                    o365_debug("Could not construct unified api.", caller)
                    raise DownloadError()
                content = await self.get_unified_apiclient().get_file_by_url(unpacked.get("url", ""))
            elif source == "office365video":
                content = await self.get_sharepoint_apiclient().get_video_file(
                    unpacked.get("downloadurl", "")
                )
        except (O365ApiError, KeyError) as e:
            o365_debug(
                _str("errorwhiledownload"),
                caller,
                {"reference": unpacked, "filename": filename, "message": str(e)},
            )
            raise DownloadError() from e

        if not content:
            o365_debug(_str("errorwhiledownload"), caller, {"reference": unpacked, "filename": filename})
            raise DownloadError()

        path = await self.storage.save(content, clean_filename(filename or "file"), self.user.id)
        logger.info("repository_file_downloaded", user_id=self.user.id, source=source, size=len(content))
        return DownloadedFile(path=path, url=unpacked)

    async def get_file_reference(self, source: str) -> str:
        """Turn a listing source into a stored file reference with a URL."""
        caller = "get_file_reference"
        unpacked = unpack_reference(source)
        if "source" not in unpacked or "id" not in unpacked:
            message = ""
            if "source" not in unpacked:
                message = "Source is not set."
            if "id" not in unpacked:
                message += " id is not set."
            o365_debug(message.strip(), caller, {"sourceunpacked": unpacked})
            return source

        fileid = unpacked["id"]
        filesource = unpacked["source"]
        reference: dict[str, Any] = {
            "source": filesource,
            "id": fileid,
            "url": unpacked.get("url", ""),
        }
        if "downloadurl" in unpacked:
            reference["downloadurl"] = unpacked["downloadurl"]

        try:
            if filesource == "onedrive":
                if self.unifiedconfigured:
                    link = await self.get_unified_apiclient().get_sharing_link(fileid)
                    reference["url"] = link or reference["url"]
                else:
                    metadata = await self.get_onedrive_apiclient().get_file_metadata(fileid)
                    if metadata.get("webUrl"):
                        reference["url"] = f"{metadata['webUrl']}?web=1"
            elif filesource == "onedrivegroup":
                if not self.unifiedconfigured:
                    o365_debug(
                        "Tried to access a onedrive group file while the graph api is disabled.",
                        caller,
                    )
                    raise DownloadError()
                reference["groupid"] = unpacked.get("groupid")
                link = await self.get_unified_apiclient().get_group_sharing_link(
                    unpacked.get("groupid"), fileid
                )
                reference["url"] = link or reference["url"]
            elif filesource == "sharepoint":
                sharepoint = self.get_sharepoint_apiclient()
                parentsiteuri = unpacked.get("parentsiteuri") or sharepoint.get_moodle_parent_site_uri()
                sharepoint.set_site(parentsiteuri)
                reference["parentsiteuri"] = parentsiteuri
                metadata = await sharepoint.get_file_metadata(fileid)
                if metadata.get("webUrl"):
                    reference["url"] = f"{metadata['webUrl']}?web=1"
            elif filesource == "trendingaround":
                if not self.unifiedconfigured:
                    o365_debug(
                        "Tried to access a trending around me file while the graph api is disabled.",
                        caller,
                    )
                    raise DownloadError()
                filedata = await self.get_unified_apiclient().get_file_data(fileid)
                if filedata.get("@microsoft.graph.downloadUrl"):
                    reference["url"] = filedata["@microsoft.graph.downloadUrl"]
        except (O365ApiError, DownloadError) as e:
            o365_debug(
                "There was a problem making the API call.",
                caller,
                {"source": filesource, "id": fileid, "message": str(e)},
            )
            return source

        return pack_reference(reference)

    def get_link(self, reference: str) -> str:
        return unpack_reference(reference).get("url") or ""

    def do_embedding(
        self,
        reference: dict[str, Any],
        forcedownload: bool = False,
        from_draft: bool = False,
    ) -> bool:
        """Check whether a file should be shown embedded rather than linked."""
        if from_draft:
            return False
        if reference.get("source") not in EMBEDDABLE_SOURCES:
            return False
        return not forcedownload

    async def send_file(
        self,
        reference: str,
        forcedownload: bool = False,
        from_draft: bool = False,
    ) -> str:
        """Resolve where to send the user to view a referenced file.

        Args:
            reference: Packed file reference
            forcedownload: The file is being downloaded, not viewed
            from_draft: The file is still in a draft area

        Returns:
            URL to redirect to

        Raises:
            FileReferenceNotFoundError: If the reference is broken
            O365RequiredError: If an embed is requested by a user without an
                Office 365 connection
        """
        caller = "send_file"
        unpacked = unpack_reference(reference)
        source = unpacked.get("source")
        if not source:
            o365_debug("File reference is broken - no source parameter.", caller, unpacked)
            raise FileReferenceNotFoundError()

        sourceclient: O365ApiClient | None = None
        fileinfo: dict[str, Any] = {}
        try:
            if source == "sharepoint":
                sharepoint = self.get_sharepoint_apiclient()
                sharepoint.set_site(
                    unpacked.get("parentsiteuri") or sharepoint.get_moodle_parent_site_uri()
                )
                sourceclient = sharepoint
                fileinfo = await sharepoint.get_file_metadata(unpacked["id"])
            elif source == "onedrive":
                if self.unifiedconfigured:
                    sourceclient = self.get_unified_apiclient()
                else:
                    sourceclient = self.get_onedrive_apiclient()
                fileinfo = await sourceclient.get_file_metadata(unpacked["id"])
            elif source == "onedrivegroup":
                unified = self.get_unified_apiclient()
                sourceclient = unified
                fileinfo = await unified.get_group_file_metadata(
                    unpacked.get("groupid"), unpacked["id"]
                )
            elif source != "office365video":
                o365_debug("File reference is broken - invalid source parameter.", caller, unpacked)
                raise FileReferenceNotFoundError()
        except (O365ApiError, KeyError) as e:
            o365_debug("Could not get file info.", caller, {"reference": unpacked, "message": str(e)})
            raise FileReferenceNotFoundError() from e

        if self.do_embedding(unpacked, forcedownload, from_draft):
            if not await self.is_o365_connected():
                raise O365RequiredError()
            fileurl = fileinfo.get("webUrl") or unpacked.get("url") or ""
            if not fileurl:
                o365_debug(
                    "Embed was requested, but could not get file info to complete request.",
                    caller,
                    {"reference": unpacked, "fileinfo": fileinfo},
                )
            else:
                embedurl = await self._embed_url(sourceclient, unpacked["id"], fileurl)
                return embedurl or fileurl

        if source == "office365video":
            return unpacked.get("url") or ""

        if not fileinfo.get("webUrl"):
            raise FileReferenceNotFoundError()
        return fileinfo["webUrl"]

    async def _embed_url(
        self,
        sourceclient: O365ApiClient | None,
        file_id: str,
        fileurl: str,
    ) -> str:
        try:
            if isinstance(sourceclient, UnifiedClient):
                result = await sourceclient.get_embed_url(file_id)
            elif isinstance(sourceclient, (OneDriveClient, SharePointClient)):
                result = await sourceclient.get_embed_url(fileurl)
            else:
                return ""
        except O365ApiError as e:
            o365_debug("Could not get embed url.", "send_file", {"message": str(e)})
            return ""
        return result.get("value") or ""
