"""Cron job result schemas."""

from pydantic import BaseModel, Field


class CalendarImportResult(BaseModel):
    """Result from importing Outlook events."""

    status: str = Field(..., description="Overall status: success, partial, error, skipped")
    subscriptions_processed: int
    events_received: int
    events_created: int
    events_skipped: int
    errors: list[str] = Field(default_factory=list)
    timestamp: str


class SystemTokenRefreshResult(BaseModel):
    """Result from refreshing the system API user token."""

    status: str = Field(..., description="Overall status: refreshed, skipped, error")
    resource: str
    expires_at: str | None = None
    errors: list[str] = Field(default_factory=list)
    timestamp: str


class MatchQueueProcessResult(BaseModel):
    """Result from processing the user match queue."""

    status: str = Field(..., description="Overall status: success, partial, error, skipped")
    items_processed: int
    items_matched: int
    items_rejected: int
    items_failed: int
    errors: list[str] = Field(default_factory=list)
    timestamp: str


class CourseGroupsResult(BaseModel):
    """Result from creating course groups."""

    status: str = Field(..., description="Overall status: success, partial, error, skipped")
    courses_checked: int
    groups_created: int
    groups_failed: int
    errors: list[str] = Field(default_factory=list)
    timestamp: str
