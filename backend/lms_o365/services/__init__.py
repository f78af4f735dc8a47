"""Business logic services."""

from .cache_service import FallbackCache, RepositoryCache, get_repository_cache
from .calendar_sync import CalendarSyncService, import_from_outlook
from .config_service import ConfigService
from .match_queue_service import MatchQueueService, process_match_queue
from .sharepoint_custom import SharePointCustomService
from .system_token import refresh_system_refresh_token
from .ucp_service import UcpService
from .usergroups import UserGroupsService, create_course_groups

__all__ = [
    "CalendarSyncService",
    "ConfigService",
    "FallbackCache",
    "MatchQueueService",
    "RepositoryCache",
    "SharePointCustomService",
    "UcpService",
    "UserGroupsService",
    "create_course_groups",
    "get_repository_cache",
    "import_from_outlook",
    "process_match_queue",
    "refresh_system_refresh_token",
]
