"""Tests for the Office 365 file repository."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lms_o365.core.exceptions import (
    AccessDeniedError,
    BadClientTypeError,
    BadPathError,
    DownloadError,
    FileReferenceNotFoundError,
    O365RequiredError,
    RepositoryNotConfiguredError,
)
from lms_o365.core.o365.exceptions import O365ApiError, O365NotFoundError
from lms_o365.core.o365.onedrive import OneDriveClient
from lms_o365.core.o365.sharepoint import SharePointClient
from lms_o365.core.o365.unified import UnifiedClient
from lms_o365.models.course import Course, CourseGroup
from lms_o365.models.o365 import O365Object
from lms_o365.models.user import User
from lms_o365.repository.office365 import Office365Repository, clean_filename
from lms_o365.repository.references import pack_reference, unpack_reference
from lms_o365.schemas.repository import DownloadedFile
from lms_o365.services.cache_service import FallbackCache, RepositoryCache

MODULE = "lms_o365.repository.office365"


@pytest.fixture
def settings():
    mock = MagicMock()
    mock.is_unified_configured = True
    mock.is_onedrive_configured = False
    mock.is_sharepoint_configured = True
    mock.graph_resource = "https://graph.microsoft.com"
    mock.graph_base_url = "https://graph.microsoft.com/v1.0"
    mock.onedrive_resource = ""
    mock.sharepoint_resource = "https://contoso.sharepoint.com"
    return mock


@pytest.fixture
def repo(settings):
    user = User(id=5, username="jdoe", email="jdoe@example.com")
    tokens = MagicMock()
    tokens.get_user_token = AsyncMock(return_value=MagicMock())
    tokens.has_token = AsyncMock(return_value=True)
    storage = MagicMock()
    storage.save = AsyncMock(return_value="5/abc_report.docx")
    cache = RepositoryCache(FallbackCache(), FallbackCache())

    with patch(f"{MODULE}.get_settings", return_value=settings):
        repository = Office365Repository(
            MagicMock(), user, token_manager=tokens, cache=cache, storage=storage
        )
    repository.usergroups = MagicMock()
    repository.sharepointcustom = MagicMock()
    return repository


def make_unified():
    client = MagicMock(spec=UnifiedClient)
    for name in (
        "get_files",
        "get_file_metadata",
        "get_file_by_id",
        "create_file",
        "get_group_files",
        "get_group_file_metadata",
        "get_group_file_by_id",
        "get_trending_files",
        "get_file_data",
        "get_file_by_url",
        "get_sharing_link",
        "get_group_sharing_link",
        "get_embed_url",
    ):
        setattr(client, name, AsyncMock())
    return client


def make_sharepoint():
    client = MagicMock(spec=SharePointClient)
    for name in (
        "get_files",
        "get_file_metadata",
        "get_file_by_id",
        "create_file",
        "get_embed_url",
        "videoservice_discover",
        "get_video_channels",
        "get_video_channel",
        "get_all_channel_videos",
        "create_video_placeholder",
        "upload_video",
        "get_video_file",
    ):
        setattr(client, name, AsyncMock())
    client.get_moodle_parent_site_uri.return_value = "moodle"
    return client


def make_course(course_id, shortname):
    return Course(id=course_id, shortname=shortname, fullname=shortname.upper())


class TestCleanFilename:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("report.docx", "report.docx"),
            ("../../etc/passwd", "passwd"),
            ("C:\\Users\\jdoe\\notes.txt", "notes.txt"),
            ("bad\x00name.txt", "badname.txt"),
            ("", "file"),
        ],
    )
    def test_clean_filename(self, name, expected):
        assert clean_filename(name) == expected


class TestGetListing:
    """Tests for top-level listing dispatch."""

    @pytest.fixture(autouse=True)
    def configured(self):
        config = MagicMock()
        config.is_configured = AsyncMock(return_value=True)
        with (
            patch(f"{MODULE}.ConfigService", return_value=config) as config_cls,
            patch(f"{MODULE}.get_user_courses", new_callable=AsyncMock, return_value={}),
        ):
            yield config_cls

    @pytest.mark.asyncio
    async def test_not_configured(self, repo, configured):
        configured.return_value.is_configured = AsyncMock(return_value=False)

        with pytest.raises(RepositoryNotConfiguredError):
            await repo.get_listing("/")

    @pytest.mark.asyncio
    async def test_root_items(self, repo):
        sharepoint = make_sharepoint()
        sharepoint.videoservice_discover.return_value = "https://contoso.sharepoint.com/portals/hub"
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)

        listing = await repo.get_listing("")

        assert [i.path for i in listing.items] == [
            "/my/",
            "/courses/",
            "/office365video/",
            "/trending/",
        ]
        assert [i.thumbnail for i in listing.items] == [
            "onedrive",
            "sharepoint",
            "office365video",
            "delve",
        ]
        assert listing.path[0].name == "Office 365"

    @pytest.mark.asyncio
    async def test_root_without_tokens(self, repo):
        repo.tokens.get_user_token = AsyncMock(return_value=None)

        listing = await repo.get_listing("/")

        assert listing.items == []

    @pytest.mark.asyncio
    async def test_groups_shown_for_group_enabled_course(self, repo):
        repo.tokens.get_user_token = AsyncMock(
            side_effect=lambda user_id, resource: MagicMock()
            if resource == "https://graph.microsoft.com"
            else None
        )
        repo.usergroups.course_is_group_enabled = AsyncMock(return_value=True)
        repo.usergroups.course_is_group_feature_enabled = AsyncMock(return_value=True)

        with patch(
            f"{MODULE}.get_user_courses",
            new_callable=AsyncMock,
            return_value={3: make_course(3, "bio101")},
        ):
            listing = await repo.get_listing("/")

        assert [i.path for i in listing.items] == ["/my/", "/groups/", "/trending/"]

    @pytest.mark.asyncio
    async def test_remembers_client_path(self, repo):
        repo.get_listing_my_unified = AsyncMock(return_value=([], []))

        await repo.get_listing("/my/FOLDER1", client_id="picker-1")

        assert await repo.cache.get_current_path(5, "picker-1") == "/my/FOLDER1"
        repo.get_listing_my_unified.assert_called_once_with("/FOLDER1")

    @pytest.mark.asyncio
    async def test_legacy_onedrive_when_graph_inactive(self, repo):
        repo.unifiedconfigured = False
        repo.onedriveconfigured = True
        repo.get_listing_my = AsyncMock(return_value=([], []))

        await repo.get_listing("/my/Docs")

        repo.get_listing_my.assert_called_once_with("/Docs")

    @pytest.mark.asyncio
    async def test_course_page_opens_course_site(self, repo):
        repo.sharepointcustom.course_is_sharepoint_enabled = AsyncMock(return_value=True)
        repo.get_listing_course = AsyncMock(return_value=([], []))

        await repo.get_listing("", course_id=3)

        assert repo.get_listing_course.call_args.args[0] == "/3"

    @pytest.mark.asyncio
    async def test_upload_path_returns_descriptor(self, repo):
        repo.get_listing_my_unified = AsyncMock(return_value=([], []))

        listing = await repo.get_listing("/my/FOLDER1/upload/")

        assert listing.items is None
        assert listing.upload.id == "/my/FOLDER1"
        assert listing.upload.label == "File"

    @pytest.mark.asyncio
    async def test_listing_serializes_items_as_list(self, repo):
        repo.get_listing_trending_unified = AsyncMock(return_value=([], []))

        listing = await repo.get_listing("/trending/")

        dumped = listing.model_dump(by_alias=True)
        assert dumped["list"] == []
        assert dumped["dynload"] is True


class TestListingGroups:
    """Tests for course group drive listings."""

    @pytest.fixture
    def courses(self):
        return {3: make_course(3, "bio101"), 4: make_course(4, "chem201")}

    @pytest.mark.asyncio
    async def test_lists_courses_with_feature(self, repo, courses):
        repo.usergroups.get_enabled_courses_with_feature = AsyncMock(return_value=[4])

        items, breadcrumb = await repo.get_listing_groups("/", courses)

        assert [i.path for i in items] == ["/groups/4"]
        assert breadcrumb[-1].path == "/groups/"

    @pytest.mark.asyncio
    async def test_unknown_course(self, repo, courses):
        with pytest.raises(BadPathError):
            await repo.get_listing_groups("/9", courses)

    @pytest.mark.asyncio
    async def test_course_level_lists_groups(self, repo, courses):
        repo.usergroups.course_is_group_enabled = AsyncMock(return_value=True)
        repo.usergroups.course_is_group_feature_enabled = AsyncMock(return_value=True)
        repo._user_course_groups = AsyncMock(
            return_value={7: CourseGroup(id=7, course_id=3, name="Lab A")}
        )

        items, breadcrumb = await repo.get_listing_groups("/3", courses)

        assert [(i.title, i.path) for i in items] == [
            ("Course Files", "/groups/3/coursegroup/"),
            ("Lab A", "/groups/3/7/"),
        ]
        assert breadcrumb[-1].name == "bio101"

    @pytest.mark.asyncio
    async def test_course_group_drive(self, repo, courses):
        repo.usergroups.course_is_group_enabled = AsyncMock(return_value=True)
        repo.usergroups.course_is_group_feature_enabled = AsyncMock(return_value=True)
        repo._user_course_groups = AsyncMock(return_value={})
        repo._group_object = AsyncMock(return_value=O365Object(objectid="grp-guid", moodleid=3))
        unified = make_unified()
        unified.get_group_files.return_value = {
            "value": [{"id": "F1", "name": "Handouts", "folder": {}}]
        }
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        items, breadcrumb = await repo.get_listing_groups("/3/coursegroup/", courses)

        unified.get_group_files.assert_called_once_with("grp-guid", "")
        assert items[0].path == "/groups/3/coursegroup/F1"
        assert breadcrumb[-1].path == "/groups/3/coursegroup/"

    @pytest.mark.asyncio
    async def test_group_not_joined(self, repo, courses):
        repo.usergroups.course_is_group_enabled = AsyncMock(return_value=True)
        repo.usergroups.course_is_group_feature_enabled = AsyncMock(return_value=True)
        repo._user_course_groups = AsyncMock(return_value={})

        with pytest.raises(BadPathError):
            await repo.get_listing_groups("/3/8/", courses)

    @pytest.mark.asyncio
    async def test_missing_group_object(self, repo, courses):
        repo.usergroups.course_is_group_enabled = AsyncMock(return_value=True)
        repo.usergroups.course_is_group_feature_enabled = AsyncMock(return_value=True)
        repo._user_course_groups = AsyncMock(return_value={})
        repo._group_object = AsyncMock(return_value=None)

        items, _ = await repo.get_listing_groups("/3/coursegroup/", courses)

        assert items == []


class TestListingCourse:
    """Tests for course SharePoint listings."""

    @pytest.mark.asyncio
    async def test_lists_courses(self, repo):
        items, _ = await repo.get_listing_course("/", {3: make_course(3, "bio101")})

        assert [(i.title, i.path) for i in items] == [("bio101", "/courses/3")]

    @pytest.mark.asyncio
    async def test_non_numeric_course(self, repo):
        with pytest.raises(BadPathError):
            await repo.get_listing_course("/abc", {})

    @pytest.mark.asyncio
    async def test_folder_listing(self, repo):
        sharepoint = make_sharepoint()
        sharepoint.get_files.return_value = {
            "value": [{"id": "1", "name": "Week 1", "type": "Folder"}]
        }
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)
        repo.sharepointcustom.get_course_subsite_uri = AsyncMock(return_value="moodle/bio101")

        items, breadcrumb = await repo.get_listing_course(
            "/3/Shared", {3: make_course(3, "bio101")}
        )

        sharepoint.set_site.assert_called_once_with("moodle/bio101")
        sharepoint.get_files.assert_called_once_with("/Shared")
        assert items[1].path == "/courses/3/Shared/Week 1"
        assert [b.path for b in breadcrumb[2:]] == ["/courses/3", "/courses/3/Shared"]

    @pytest.mark.asyncio
    async def test_api_error_gives_empty_listing(self, repo):
        sharepoint = make_sharepoint()
        sharepoint.get_files.side_effect = O365NotFoundError("gone", status_code=404)
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)
        repo.sharepointcustom.get_course_subsite_uri = AsyncMock(return_value="moodle/bio101")

        items, breadcrumb = await repo.get_listing_course("/3", {3: make_course(3, "bio101")})

        assert items == []
        assert breadcrumb[-1].name == "bio101"

    @pytest.mark.asyncio
    async def test_upload_breadcrumb(self, repo):
        _, breadcrumb = await repo.get_listing_course(
            "/3/Shared/upload/", {3: make_course(3, "bio101")}
        )

        assert breadcrumb[-1].name == "Upload New File"
        assert breadcrumb[-1].path == "/courses/3/Shared/upload"


class TestListingMy:
    @pytest.mark.asyncio
    async def test_legacy_breadcrumbs(self, repo):
        onedrive = MagicMock(spec=OneDriveClient)
        onedrive.get_contents = AsyncMock(return_value={"value": []})
        repo.get_onedrive_apiclient = MagicMock(return_value=onedrive)

        items, breadcrumb = await repo.get_listing_my("/Docs/Sub")

        onedrive.get_contents.assert_called_once_with("/Docs/Sub")
        assert items[0].path == "/my/Docs/Sub/upload/"
        assert [b.path for b in breadcrumb[2:]] == ["/my/Docs", "/my/Docs/Sub"]

    @pytest.mark.asyncio
    async def test_graph_breadcrumbs_from_cached_parent_ids(self, repo):
        await repo.cache.set_folder_id(5, "my", "/Docs", "D1")
        unified = make_unified()
        unified.get_files.return_value = {"value": []}
        unified.get_file_metadata.return_value = {
            "id": "S1",
            "name": "Sub",
            "parentReference": {"path": "/drive/root:/Docs"},
        }
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        _, breadcrumb = await repo.get_listing_my_unified("/S1")

        assert [(b.name, b.path) for b in breadcrumb[2:]] == [
            ("Docs", "/my/D1"),
            ("Sub", "/my/S1"),
        ]
        assert await repo.cache.get_folder_id(5, "my", "/Docs/Sub") == "S1"

    @pytest.mark.asyncio
    async def test_graph_upload_breadcrumb(self, repo):
        unified = make_unified()
        unified.get_file_metadata.return_value = {"id": "S1", "name": "Sub"}
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        items, breadcrumb = await repo.get_listing_my_unified("/S1/upload/")

        unified.get_files.assert_not_called()
        assert items == []
        assert breadcrumb[-1].path == "/my/S1/upload/"


class TestListingVideos:
    @pytest.mark.asyncio
    async def test_channels(self, repo):
        sharepoint = make_sharepoint()
        sharepoint.videoservice_discover.return_value = "https://contoso.sharepoint.com/portals/hub"
        sharepoint.get_video_channels.return_value = {
            "value": [{"odata.type": "SP.Publishing.VideoChannel", "Id": "ch1", "Title": "Lectures"}]
        }
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)

        items, breadcrumb = await repo.get_listing_videos("/")

        sharepoint.override_resource.assert_called_once_with(
            "https://contoso.sharepoint.com/portals/hub"
        )
        assert [i.path for i in items] == ["/office365video/ch1"]
        assert breadcrumb[-1].path == "/office365video/"

    @pytest.mark.asyncio
    async def test_channel_breadcrumb_uses_title(self, repo):
        sharepoint = make_sharepoint()
        sharepoint.videoservice_discover.return_value = "https://portal"
        sharepoint.get_all_channel_videos.return_value = {"value": []}
        sharepoint.get_video_channel.return_value = {"Title": "Lectures"}
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)

        items, breadcrumb = await repo.get_listing_videos("/ch1")

        sharepoint.get_all_channel_videos.assert_called_once_with("ch1")
        assert items[0].path == "/office365video/ch1/upload/"
        assert (breadcrumb[-1].name, breadcrumb[-1].path) == ("Lectures", "/office365video/ch1")

    @pytest.mark.asyncio
    async def test_no_portal(self, repo):
        sharepoint = make_sharepoint()
        sharepoint.videoservice_discover.return_value = ""
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)

        items, _ = await repo.get_listing_videos("/")

        assert items == []


class TestUpload:
    """Tests for uploading into the client's current folder."""

    @pytest.fixture(autouse=True)
    def downloaded(self, repo):
        repo.get_file = AsyncMock(
            return_value=DownloadedFile(path="5/abc_notes.txt", url={"source": "onedrive"})
        )

    @pytest.mark.asyncio
    async def test_unknown_client_path(self, repo):
        with pytest.raises(BadClientTypeError):
            await repo.upload("notes.txt", b"data", client_id="picker-1")

    @pytest.mark.asyncio
    async def test_onedrive_via_graph(self, repo):
        await repo.cache.set_current_path(5, "picker-1", "/my/FOLDER1/upload/")
        unified = make_unified()
        unified.create_file.return_value = {"id": "NEW1"}
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        result = await repo.upload("../notes.txt", b"data", client_id="picker-1")

        unified.create_file.assert_called_once_with(
            "FOLDER1", "notes.txt", b"data", "application/octet-stream"
        )
        assert unpack_reference(result.source) == {"id": "NEW1", "source": "onedrive"}
        assert result.filename == "notes.txt"
        assert result.path == "5/abc_notes.txt"

    @pytest.mark.asyncio
    async def test_sharepoint_requires_enrolment(self, repo):
        await repo.cache.set_current_path(5, "picker-1", "/courses/3/upload/")

        with (
            patch(f"{MODULE}.get_user_courses", new_callable=AsyncMock, return_value={}),
            pytest.raises(AccessDeniedError),
        ):
            await repo.upload("notes.txt", b"data", client_id="picker-1")

    @pytest.mark.asyncio
    async def test_sharepoint_bad_course(self, repo):
        await repo.cache.set_current_path(5, "picker-1", "/courses/abc/upload/")

        with pytest.raises(BadPathError):
            await repo.upload("notes.txt", b"data", client_id="picker-1")

    @pytest.mark.asyncio
    async def test_sharepoint_upload(self, repo):
        await repo.cache.set_current_path(5, "picker-1", "/courses/3/Shared/upload/")
        sharepoint = make_sharepoint()
        sharepoint.create_file.return_value = {"id": "SP1"}
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)
        repo.sharepointcustom.get_course_subsite_uri = AsyncMock(return_value="moodle/bio101")

        with patch(
            f"{MODULE}.get_user_courses",
            new_callable=AsyncMock,
            return_value={3: make_course(3, "bio101")},
        ):
            result = await repo.upload("notes.txt", b"data", client_id="picker-1")

        sharepoint.create_file.assert_called_once_with("/Shared", "notes.txt", b"data")
        assert unpack_reference(result.source)["parentsiteuri"] == "moodle/bio101"

    @pytest.mark.asyncio
    async def test_video_upload(self, repo):
        await repo.cache.set_current_path(5, "picker-1", "/office365video/ch1/upload/")
        sharepoint = make_sharepoint()
        sharepoint.videoservice_discover.return_value = "https://portal"
        sharepoint.create_video_placeholder.return_value = {
            "odata.id": "vid-odata",
            "ChannelID": "ch1",
            "ID": "v1",
            "Url": "https://contoso.sharepoint.com/portals/Lectures/pVid/week1.mp4",
            "ServerRelativeUrl": "/portals/Lectures/pVid/week1.mp4",
        }
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)

        result = await repo.upload("week1.mp4", b"video", client_id="picker-1")

        sharepoint.create_video_placeholder.assert_called_once_with(
            "ch1", "week1.mp4", "", "week1.mp4"
        )
        sharepoint.upload_video.assert_called_once_with("ch1", "v1", b"video")
        assert result.url is not None
        assert unpack_reference(result.source)["source"] == "office365video"


class TestGetFile:
    """Tests for downloading referenced files."""

    @pytest.mark.asyncio
    async def test_onedrive_download_saved(self, repo):
        unified = make_unified()
        unified.get_file_by_id.return_value = b"content"
        repo.get_unified_apiclient = MagicMock(return_value=unified)
        reference = pack_reference({"id": "I1", "source": "onedrive"})

        result = await repo.get_file(reference, "report.docx")

        repo.storage.save.assert_called_once_with(b"content", "report.docx", 5)
        assert result.path == "5/abc_report.docx"
        assert result.url == {"id": "I1", "source": "onedrive"}

    @pytest.mark.asyncio
    async def test_sharepoint_uses_parent_site(self, repo):
        sharepoint = make_sharepoint()
        sharepoint.get_file_by_id.return_value = b"content"
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)
        reference = pack_reference(
            {"id": "S1", "source": "sharepoint", "parentsiteuri": "moodle/bio101"}
        )

        await repo.get_file(reference, "a.pdf")

        sharepoint.set_site.assert_called_once_with("moodle/bio101")

    @pytest.mark.asyncio
    async def test_api_error(self, repo):
        unified = make_unified()
        unified.get_file_by_id.side_effect = O365ApiError("boom", status_code=500)
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        with pytest.raises(DownloadError):
            await repo.get_file(pack_reference({"id": "I1", "source": "onedrive"}), "a")

    @pytest.mark.asyncio
    async def test_empty_content(self, repo):
        unified = make_unified()
        unified.get_file_by_id.return_value = b""
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        with pytest.raises(DownloadError):
            await repo.get_file(pack_reference({"id": "I1", "source": "onedrive"}), "a")

        repo.storage.save.assert_not_called()

    @pytest.mark.asyncio
    async def test_group_file_needs_graph(self, repo):
        repo.unifiedconfigured = False

        with pytest.raises(DownloadError):
            await repo.get_file(
                pack_reference({"id": "I1", "source": "onedrivegroup", "groupid": "g"}), "a"
            )

    @pytest.mark.asyncio
    async def test_missing_group_id(self, repo):
        repo.get_unified_apiclient = MagicMock(return_value=make_unified())

        with pytest.raises(DownloadError):
            await repo.get_file(pack_reference({"id": "I1", "source": "onedrivegroup"}), "a")


class TestGetFileReference:
    """Tests for turning listing sources into stored references."""

    @pytest.mark.asyncio
    async def test_incomplete_source_returned(self, repo):
        source = pack_reference({"source": "onedrive"})

        assert await repo.get_file_reference(source) == source

    @pytest.mark.asyncio
    async def test_onedrive_sharing_link(self, repo):
        unified = make_unified()
        unified.get_sharing_link.return_value = "https://share/1"
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        packed = await repo.get_file_reference(pack_reference({"id": "I1", "source": "onedrive"}))

        assert unpack_reference(packed) == {
            "id": "I1",
            "source": "onedrive",
            "url": "https://share/1",
        }

    @pytest.mark.asyncio
    async def test_sharepoint_web_url(self, repo):
        sharepoint = make_sharepoint()
        sharepoint.get_file_metadata.return_value = {"webUrl": "https://sp/a.pdf"}
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)

        packed = await repo.get_file_reference(pack_reference({"id": "S1", "source": "sharepoint"}))

        reference = unpack_reference(packed)
        assert reference["url"] == "https://sp/a.pdf?web=1"
        assert reference["parentsiteuri"] == "moodle"

    @pytest.mark.asyncio
    async def test_trending_download_url(self, repo):
        unified = make_unified()
        unified.get_file_data.return_value = {"@microsoft.graph.downloadUrl": "https://dl/1"}
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        packed = await repo.get_file_reference(
            pack_reference({"id": "drives/d/items/i", "source": "trendingaround"})
        )

        assert unpack_reference(packed)["url"] == "https://dl/1"

    @pytest.mark.asyncio
    async def test_api_error_returns_source(self, repo):
        unified = make_unified()
        unified.get_sharing_link.side_effect = O365ApiError("boom", status_code=500)
        repo.get_unified_apiclient = MagicMock(return_value=unified)
        source = pack_reference({"id": "I1", "source": "onedrive"})

        assert await repo.get_file_reference(source) == source

    def test_get_link(self, repo):
        assert repo.get_link(pack_reference({"url": "https://x"})) == "https://x"
        assert repo.get_link("garbage") == ""


class TestDoEmbedding:
    @pytest.mark.parametrize(
        ("reference", "forcedownload", "from_draft", "expected"),
        [
            ({"source": "onedrive"}, False, False, True),
            ({"source": "sharepoint"}, False, False, True),
            ({"source": "onedrive"}, True, False, False),
            ({"source": "onedrive"}, False, True, False),
            ({"source": "onedrivegroup"}, False, False, False),
            ({"source": "office365video"}, False, False, False),
        ],
    )
    def test_do_embedding(self, repo, reference, forcedownload, from_draft, expected):
        assert repo.do_embedding(reference, forcedownload, from_draft) is expected


class TestSendFile:
    """Tests for resolving where to send a viewer."""

    @pytest.mark.asyncio
    async def test_no_source(self, repo):
        with pytest.raises(FileReferenceNotFoundError):
            await repo.send_file(pack_reference({"id": "x"}))

    @pytest.mark.asyncio
    async def test_invalid_source(self, repo):
        with pytest.raises(FileReferenceNotFoundError):
            await repo.send_file(pack_reference({"id": "x", "source": "dropbox"}))

    @pytest.mark.asyncio
    async def test_metadata_failure(self, repo):
        unified = make_unified()
        unified.get_file_metadata.side_effect = O365NotFoundError("gone", status_code=404)
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        with pytest.raises(FileReferenceNotFoundError):
            await repo.send_file(pack_reference({"id": "I1", "source": "onedrive"}))

    @pytest.mark.asyncio
    async def test_forcedownload_returns_web_url(self, repo):
        unified = make_unified()
        unified.get_file_metadata.return_value = {"webUrl": "https://od/report.docx"}
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        url = await repo.send_file(
            pack_reference({"id": "I1", "source": "onedrive"}), forcedownload=True
        )

        assert url == "https://od/report.docx"
        unified.get_embed_url.assert_not_called()

    @pytest.mark.asyncio
    async def test_current_user_token_used(self, repo):
        unified = make_unified()
        unified.get_file_metadata.return_value = {"webUrl": "https://od/report.docx"}
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        await repo.send_file(
            pack_reference({"id": "I1", "source": "onedrive"}),
            forcedownload=True,
        )

        repo.get_unified_apiclient.assert_called_once_with()
        assert repo._token_source("https://graph.microsoft.com").user_id == 5

    @pytest.mark.asyncio
    async def test_embed_requires_connection(self, repo):
        unified = make_unified()
        unified.get_file_metadata.return_value = {"webUrl": "https://od/report.docx"}
        repo.get_unified_apiclient = MagicMock(return_value=unified)
        repo.tokens.has_token = AsyncMock(return_value=False)

        with pytest.raises(O365RequiredError):
            await repo.send_file(pack_reference({"id": "I1", "source": "onedrive"}))

    @pytest.mark.asyncio
    async def test_graph_embed_url(self, repo):
        unified = make_unified()
        unified.get_file_metadata.return_value = {"webUrl": "https://od/report.docx"}
        unified.get_embed_url.return_value = {"value": "https://preview/1"}
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        url = await repo.send_file(pack_reference({"id": "I1", "source": "onedrive"}))

        assert url == "https://preview/1"
        unified.get_embed_url.assert_called_once_with("I1")

    @pytest.mark.asyncio
    async def test_sharepoint_embed_from_web_url(self, repo):
        sharepoint = make_sharepoint()
        sharepoint.get_file_metadata.return_value = {"webUrl": "https://sp/a.docx"}
        sharepoint.get_embed_url.return_value = {"value": "https://sp/a.docx?action=embedview"}
        repo.get_sharepoint_apiclient = MagicMock(return_value=sharepoint)

        url = await repo.send_file(pack_reference({"id": "S1", "source": "sharepoint"}))

        assert url == "https://sp/a.docx?action=embedview"
        sharepoint.get_embed_url.assert_called_once_with("https://sp/a.docx")

    @pytest.mark.asyncio
    async def test_video_url(self, repo):
        url = await repo.send_file(
            pack_reference({"id": "v", "source": "office365video", "url": "https://video/1"})
        )

        assert url == "https://video/1"

    @pytest.mark.asyncio
    async def test_missing_web_url(self, repo):
        unified = make_unified()
        unified.get_group_file_metadata.return_value = {}
        repo.get_unified_apiclient = MagicMock(return_value=unified)

        with pytest.raises(FileReferenceNotFoundError):
            await repo.send_file(
                pack_reference({"id": "I1", "source": "onedrivegroup", "groupid": "g"})
            )


class TestClientLifecycle:
    @pytest.mark.asyncio
    async def test_clients_closed_on_exit(self, repo):
        with patch("lms_o365.core.o365.sharepoint.get_settings") as sp_settings:
            sp_settings.return_value.sharepoint_resource = "https://contoso.sharepoint.com"
            async with repo:
                unified = repo.get_unified_apiclient()
                sharepoint = repo.get_sharepoint_apiclient(7)
                unified.close = AsyncMock()
                sharepoint.close = AsyncMock()

        unified.close.assert_called_once()
        sharepoint.close.assert_called_once()
        assert repo._clients == []
        assert sharepoint._tokens.user_id == 7
