"""User control panel schemas."""

from typing import Literal

from pydantic import BaseModel, Field

ConnectionType = Literal["aadlogin", "linked", "notconnected"]
ConnectionStatusName = Literal["connected", "matched", "notconnected"]


class UcpHeader(BaseModel):
    """Connection flags computed for every control panel request."""

    o365loginconnected: bool
    o365connected: bool


class UcpLink(BaseModel):
    """An action the user can take from a control panel page."""

    action: str
    label: str


class ConnectionStatus(BaseModel):
    """Connection status block on the control panel index."""

    title: str
    status: ConnectionStatusName
    level: Literal["success", "info", "error"] | None = None
    message: str = ""
    canmanage: bool = False
    links: list[UcpLink] = Field(default_factory=list)


class IndexFeature(BaseModel):
    """A feature entry on the control panel index.

    Disabled features are listed without a link.
    """

    id: str
    title: str
    description: str
    enabled: bool
    action: str | None = None


class UcpIndexResponse(BaseModel):
    title: str
    intro: str
    status: ConnectionStatus
    features_title: str
    features_intro: str
    features: list[IndexFeature]


class ConnectionOption(BaseModel):
    """One way of connecting (login or linked) and the action offered for it."""

    id: Literal["aadlogin", "linked"]
    title: str
    description: str
    link: UcpLink


class ConnectionPageResponse(BaseModel):
    """Data for the connection management page."""

    title: str
    description: str
    connection_type: ConnectionType
    status: str
    level: Literal["success", "info", "error"]
    options_title: str | None = None
    options: list[ConnectionOption] = Field(default_factory=list)


class OneNotePreference(BaseModel):
    disableo365onenote: bool = False


class UcpRedirect(BaseModel):
    """Where the client should navigate next."""

    url: str
