"""Convert Office 365 API folder contents into file picker listings.

Each API has its own item shape:
- Graph drive items (``unified``, ``unifiedgroup``) have ``folder`` or
  ``file`` facets and are addressed by id
- legacy OneDrive and SharePoint files API items (``onedrive``,
  ``sharepoint``) have ``type`` Folder or File and are addressed by name
- trending insights (``trendingaround``) wrap the document in
  ``resourceVisualization`` and ``resourceReference``
- Office 365 Video objects (``office365video``) are channels or videos
"""

import mimetypes
from typing import Any

from lms_o365.repository.references import pack_reference
from lms_o365.schemas.repository import RepositoryItem
from lms_o365.services.calendar_sync import parse_graph_datetime
from lms_o365.strings import get_string

UPLOAD_SUFFIX = "/upload/"

FOLDER_ICON = "folder"
UPLOAD_ICON = "add_file"

VIDEO_CHANNEL_TYPE = "SP.Publishing.VideoChannel"
VIDEO_ITEM_TYPE = "SP.Publishing.VideoItem"

_PATH_PREFIXES = {
    "onedrive": "/my",
    "unified": "/my",
    "sharepoint": "/courses",
    "unifiedgroup": "/groups",
    "trendingaround": "/my",
    "office365video": "/office365video",
}


def path_is_upload(path: str) -> bool:
    return path.endswith(UPLOAD_SUFFIX)


def strip_upload(path: str) -> str:
    if path_is_upload(path):
        return path[: -len(UPLOAD_SUFFIX)]
    return path


def _join(prefix: str, name: str) -> str:
    return f"{prefix.rstrip('/')}/{name}"


def file_icon(filename: str) -> str:
    """Icon name for a file, from its mime type's major part."""
    mimetype, _ = mimetypes.guess_type(filename)
    if mimetype is None:
        return "document"
    major, _, minor = mimetype.partition("/")
    if major in ("image", "video", "audio", "text"):
        return major
    if "pdf" in minor:
        return "pdf"
    if "spreadsheet" in minor or "excel" in minor:
        return "spreadsheet"
    if "presentation" in minor or "powerpoint" in minor:
        return "powerpoint"
    return "document"


def timestamp(value: Any) -> int | None:
    """Unix time for an API date string, or None when missing or unparseable."""
    if not value:
        return None
    try:
        return int(parse_graph_datetime(value).timestamp())
    except ValueError:
        return None


def author_name(content: dict[str, Any]) -> str:
    """First comma-separated part of the creator's display name."""
    display_name = ((content.get("createdBy") or {}).get("user") or {}).get("displayName")
    if not display_name:
        return ""
    return display_name.split(",")[0]


def video_urls(video: dict[str, Any]) -> tuple[str, str]:
    """Build the player and download URLs for an Office 365 Video item.

    Returns:
        (url, downloadurl)
    """
    parts = (video.get("Url") or "").split("/")
    host = parts[2] if len(parts) > 2 else ""
    portal = parts[4] if len(parts) > 4 else ""
    downloadurl = (
        f"https://{host}/_api/SP.AppContextSite(@target)/Web/"
        f"GetFileByServerRelativeUrl('{video.get('ServerRelativeUrl', '')}')/$value"
        f"?@target='https://{host}/portals/{portal}'"
    )
    url = (
        f"https://{host}/portals/hub/_layouts/15/PointPublishing.aspx?app=video&"
        f"p=p&chid={video.get('ChannelID', '')}&vid={video.get('ID', '')}"
    )
    return url, downloadurl


def _folder(title: str, path: str, content: dict[str, Any], created: str, modified: str) -> RepositoryItem:
    return RepositoryItem(
        title=title,
        path=path,
        thumbnail=FOLDER_ICON,
        date=timestamp(content.get(created)),
        datemodified=timestamp(content.get(modified)),
        datecreated=timestamp(content.get(created)),
        children=[],
    )


def _drive_file(
    content: dict[str, Any],
    source: dict[str, Any],
    created: str,
    modified: str,
) -> RepositoryItem:
    name = content.get("name", "")
    return RepositoryItem(
        title=name,
        date=timestamp(content.get(created)),
        datemodified=timestamp(content.get(modified)),
        datecreated=timestamp(content.get(created)),
        size=content.get("size"),
        url=f"{content.get('webUrl', '')}?web=1",
        thumbnail=file_icon(name),
        author=author_name(content),
        source=pack_reference(source),
    )


def _graph_item(
    content: dict[str, Any],
    pathprefix: str,
    clienttype: str,
    parentinfo: str | None,
) -> RepositoryItem | None:
    if "folder" in content:
        return _folder(
            content.get("name", ""),
            _join(pathprefix, content.get("id", "")),
            content,
            "createdDateTime",
            "lastModifiedDateTime",
        )
    if "file" not in content:
        return None

    if clienttype == "unified":
        source = {"id": content.get("id"), "source": "onedrive"}
    else:
        source = {"id": content.get("id"), "source": "onedrivegroup", "groupid": parentinfo}
    return _drive_file(content, source, "createdDateTime", "lastModifiedDateTime")


def _trending_item(content: dict[str, Any], pathprefix: str) -> RepositoryItem | None:
    visualization = content.get("resourceVisualization") or {}
    reference = content.get("resourceReference") or {}
    title = visualization.get("title") or content.get("name") or ""
    if not reference.get("id"):
        return None

    if visualization.get("type") == "Folder":
        return RepositoryItem(
            title=title,
            path=_join(pathprefix, title),
            thumbnail=FOLDER_ICON,
            children=[],
        )

    return RepositoryItem(
        title=title,
        url=f"{reference.get('webUrl', '')}?web=1",
        thumbnail=file_icon(title),
        source=pack_reference({"id": reference["id"], "source": "trendingaround"}),
    )


def _video_item(content: dict[str, Any], pathprefix: str) -> RepositoryItem | None:
    odata_type = content.get("odata.type")
    if odata_type == VIDEO_CHANNEL_TYPE:
        return RepositoryItem(
            title=content.get("Title", ""),
            path=_join(pathprefix, str(content.get("Id", ""))),
            thumbnail=FOLDER_ICON,
            children=[],
        )
    if odata_type != VIDEO_ITEM_TYPE:
        return None

    url, downloadurl = video_urls(content)
    source = {
        "id": content.get("odata.id"),
        "source": "office365video",
        "url": url,
        "downloadurl": downloadurl,
    }
    filename = content.get("FileName", "")
    return RepositoryItem(
        title=filename,
        date=timestamp(content.get("CreatedDate")),
        datecreated=timestamp(content.get("CreatedDate")),
        url=url,
        thumbnail=file_icon(filename),
        source=pack_reference(source),
    )


def _files_api_item(
    content: dict[str, Any],
    pathprefix: str,
    clienttype: str,
    parentinfo: str | None,
) -> RepositoryItem | None:
    name = content.get("name", "")
    if content.get("type") == "Folder":
        return _folder(
            name,
            _join(pathprefix, name),
            content,
            "dateTimeCreated",
            "dateTimeLastModified",
        )
    if content.get("type") != "File":
        return None

    source: dict[str, Any] = {
        "id": content.get("id"),
        "source": "sharepoint" if clienttype == "sharepoint" else "onedrive",
    }
    if clienttype == "sharepoint":
        source["parentsiteuri"] = parentinfo
    return _drive_file(content, source, "dateTimeCreated", "dateTimeLastModified")


def contents_api_response_to_list(
    response: dict[str, Any] | None,
    path: str,
    clienttype: str,
    parentinfo: str | None = None,
    addupload: bool = True,
) -> list[RepositoryItem]:
    """Build listing items from an API folder response.

    Args:
        response: ``{"value": [...]}`` from one of the REST clients
        path: Path of the listed folder, below the client type's prefix
        clienttype: onedrive, unified, sharepoint, unifiedgroup,
            trendingaround or office365video
        parentinfo: Parent site URI (sharepoint) or group object id
            (unifiedgroup), recorded in file references
        addupload: Start the listing with an upload entry

    Returns:
        Listing items
    """
    base = _PATH_PREFIXES.get(clienttype, "")
    if clienttype in ("unified", "trendingaround", "office365video"):
        pathprefix = base
    else:
        pathprefix = base + path
    uploadpathprefix = base + path if clienttype in ("unified", "office365video") else pathprefix

    items: list[RepositoryItem] = []
    if addupload:
        items.append(
            RepositoryItem(
                title=get_string("upload", "repository_office365"),
                path=uploadpathprefix.rstrip("/") + UPLOAD_SUFFIX,
                thumbnail=UPLOAD_ICON,
                children=[],
            )
        )

    if not isinstance(response, dict) or not isinstance(response.get("value"), list):
        return items

    for content in response["value"]:
        if not isinstance(content, dict):
            continue
        if clienttype in ("unified", "unifiedgroup"):
            item = _graph_item(content, pathprefix, clienttype, parentinfo)
        elif clienttype == "trendingaround":
            item = _trending_item(content, pathprefix)
        elif clienttype == "office365video":
            item = _video_item(content, pathprefix)
        else:
            item = _files_api_item(content, pathprefix, clienttype, parentinfo)
        if item is not None:
            items.append(item)
    return items
