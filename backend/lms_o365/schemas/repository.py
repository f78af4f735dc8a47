"""File repository schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Breadcrumb(BaseModel):
    name: str
    path: str


class RepositoryItem(BaseModel):
    """A folder or file in a listing.

    Folders carry ``path`` and ``children``; files carry ``source``, a
    packed reference that can be handed back to download the file.
    """

    title: str
    path: str | None = None
    thumbnail: str | None = None
    date: int | None = None
    datemodified: int | None = None
    datecreated: int | None = None
    size: int | None = None
    url: str | None = None
    author: str | None = None
    source: str | None = None
    children: list["RepositoryItem"] | None = None


class UploadDescriptor(BaseModel):
    """Shown in place of a listing when the path is an upload target."""

    label: str
    id: str | None = None


class RepositoryListing(BaseModel):
    """Listing response in the file picker's shape."""

    model_config = ConfigDict(populate_by_name=True)

    dynload: bool = True
    nologin: bool = True
    nosearch: bool = True
    items: list[RepositoryItem] | None = Field(default=None, alias="list")
    path: list[Breadcrumb]
    upload: UploadDescriptor | None = None


class UploadResult(BaseModel):
    filename: str
    source: str
    path: str
    url: str | None = None


class DownloadedFile(BaseModel):
    """A file fetched into storage.

    ``url`` is the unpacked reference the file was fetched from.
    """

    path: str
    url: dict[str, Any]


class FileReferenceRequest(BaseModel):
    source: str


class FileReferenceResponse(BaseModel):
    reference: str
