"""User control panel.

Lets an LMS user see and manage their Office 365 connection, pick which
LMS calendars sync with which Outlook calendars, and opt out of OneNote.

A user is *connected* when they hold a Graph token. Connected users
either log in through Office 365 (``aadlogin``, auth method ``oidc``) or
keep their LMS login and are *linked*. A user an administrator matched
through the match queue, who has not yet signed in to Office 365, is
*matched*.
"""

from datetime import UTC, datetime, timedelta
from secrets import token_urlsafe
from typing import Any
from urllib.parse import urlencode

from jose import JWTError, jwt
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.config import get_settings
from lms_o365.core.exceptions import NotConnectedError
from lms_o365.core.logging import get_logger
from lms_o365.core.o365.auth import O365AuthService, get_o365_auth
from lms_o365.core.o365.exceptions import O365AuthenticationError
from lms_o365.core.o365.tokens import TokenManager
from lms_o365.core.permissions import (
    can_manage_site_events,
    connection_capability,
    course_event_permissions,
    get_user_courses,
)
from lms_o365.models.calendar import CalendarType
from lms_o365.models.o365 import O365Connection, O365Object, ObjectSubtype, ObjectType
from lms_o365.models.user import AuthMethod, User, UserPreference
from lms_o365.schemas.calendar import (
    CalendarChoice,
    CalendarPageResponse,
    CalendarSubscriptionsForm,
    CourseSummary,
    OutlookCalendar,
)
from lms_o365.schemas.ucp import (
    ConnectionOption,
    ConnectionPageResponse,
    ConnectionStatus,
    IndexFeature,
    UcpHeader,
    UcpIndexResponse,
    UcpLink,
)
from lms_o365.services.calendar_sync import CalendarSyncService
from lms_o365.strings import get_string

logger = get_logger(__name__)

ONENOTE_PREFERENCE = "local_o365_disableo365onenote"
UCP_PATH = "/api/v1/ucp"
STATE_ALGORITHM = "HS256"
STATE_EXPIRATION_MINUTES = 10


class UcpService:
    """Control panel operations for one user."""

    def __init__(
        self,
        db: AsyncSession,
        user: User,
        token_manager: TokenManager | None = None,
        auth: O365AuthService | None = None,
    ):
        self.db = db
        self.user = user
        self.settings = get_settings()
        self.auth = auth or get_o365_auth()
        self.tokens = token_manager or TokenManager(db, self.auth)
        self.o365loginconnected = False
        self.o365connected = False

    async def header(self) -> UcpHeader:
        """Compute the connection flags every page relies on."""
        self.o365loginconnected = self.user.auth == AuthMethod.OIDC
        self.o365connected = await self.tokens.has_token(
            self.user.id, self.settings.graph_resource
        )
        return UcpHeader(
            o365loginconnected=self.o365loginconnected,
            o365connected=self.o365connected,
        )

    def get_connection_type(self) -> str:
        if self.o365connected:
            return "aadlogin" if self.user.auth == AuthMethod.OIDC else "linked"
        return "notconnected"

    async def _get_connection(self) -> O365Connection | None:
        result = await self.db.execute(
            select(O365Connection).where(O365Connection.muserid == self.user.id)
        )
        return result.scalar_one_or_none()

    async def _get_upn(self) -> str:
        """UPN of the user's Office 365 account, from the object cache."""
        result = await self.db.execute(
            select(O365Object.o365name).where(
                O365Object.type == ObjectType.USER.value,
                O365Object.moodleid == self.user.id,
            )
        )
        upn = result.scalars().first()
        if upn:
            return upn
        connection = await self._get_connection()
        return connection.aadupn if connection is not None else ""

    async def connection_status(self, status: str) -> ConnectionStatus:
        """Build the connection status block for the index page.

        Args:
            status: "connected", "matched" or "notconnected"
        """
        connection = await self._get_connection()
        mode = "disconnect"
        if status == "notconnected" or (status == "matched" and connection is None):
            mode = "connect"
        elif status == "matched" and connection_capability(self.user, "connect"):
            mode = "connect"
        canmanage = connection_capability(self.user, mode)

        manage = UcpLink(
            action="connection",
            label=get_string("ucp_index_connectionstatus_manage"),
        )
        block = ConnectionStatus(
            title=get_string("ucp_index_connectionstatus_title"),
            status=status,
            canmanage=canmanage,
        )

        if status == "connected":
            block.level = "success"
            if self.get_connection_type() == "linked":
                block.message = (
                    get_string("ucp_index_connectionstatus_connected")
                    + " "
                    + get_string("ucp_index_connectionstatus_usinglinked")
                )
                if canmanage:
                    block.links.append(manage)
                if connection_capability(self.user, "connect"):
                    block.links.append(
                        UcpLink(
                            action="connecttoken",
                            label=get_string("ucp_index_connectionstatus_reconnect"),
                        )
                    )
            else:
                block.message = (
                    get_string("ucp_index_connectionstatus_connected")
                    + " "
                    + get_string("ucp_index_connectionstatus_usinglogin")
                )
                if canmanage:
                    block.links.append(manage)
        elif status == "matched":
            if canmanage and connection is not None:
                block.level = "info"
                block.message = get_string(
                    "ucp_index_connectionstatus_matched", a=connection.aadupn
                )
                block.links.append(
                    UcpLink(
                        action="connecttoken",
                        label=get_string("ucp_index_connectionstatus_login"),
                    )
                )
        elif canmanage:
            block.level = "error"
            block.message = get_string("ucp_index_connectionstatus_notconnected")
            block.links.append(manage)

        return block

    @staticmethod
    def print_index_feature(feature_id: str, enabled: bool) -> IndexFeature:
        return IndexFeature(
            id=feature_id,
            title=get_string(f"ucp_index_{feature_id}_title"),
            description=get_string(f"ucp_index_{feature_id}_desc"),
            enabled=enabled,
            action=feature_id if enabled else None,
        )

    async def index(self) -> UcpIndexResponse:
        """Control panel landing page."""
        await self.header()
        can_connect = connection_capability(self.user, "connect")

        if can_connect or self.o365connected:
            intro = get_string("ucp_general_intro")
        else:
            intro = get_string("ucp_general_intro_notconnected_nopermissions")

        if self.o365connected:
            status = await self.connection_status("connected")
        elif await self._get_connection() is not None:
            status = await self.connection_status("matched")
        else:
            status = await self.connection_status("notconnected")

        features_intro = get_string("ucp_features_intro")
        if not self.o365connected:
            features_intro += get_string("ucp_features_intro_notconnected")

        features = []
        if can_connect:
            features.append(self.print_index_feature("connection", True))
        features.append(self.print_index_feature("calendar", self.o365connected))
        features.append(self.print_index_feature("onenote", self.o365connected))

        return UcpIndexResponse(
            title=get_string("ucp_title"),
            intro=intro,
            status=status,
            features_title=get_string("ucp_features"),
            features_intro=features_intro,
            features=features,
        )

    async def connection_page(self, o365accountconnected: bool = False) -> ConnectionPageResponse:
        """Connection management page.

        Args:
            o365accountconnected: The last connection attempt was refused
                because the Office 365 account belongs to another user

        Raises:
            HTTPException 403: If the user may neither connect nor disconnect
        """
        await self.header()
        candisconnect = connection_capability(self.user, "disconnect")
        canconnect = connection_capability(self.user, "connect")
        if not (candisconnect or canconnect):
            connection_capability(self.user, "both", require=True)

        connection_type = self.get_connection_type()
        if o365accountconnected:
            status = get_string("ucp_o365accountconnected")
            level = "error"
        else:
            status = get_string("ucp_connection_disconnected")
            level = "info"

        if connection_type == "aadlogin":
            status = get_string("ucp_connection_aadlogin_active", a=await self._get_upn())
            level = "success"
        elif connection_type == "linked":
            status = get_string("ucp_connection_linked_active", a=await self._get_upn())
            level = "success"

        page = ConnectionPageResponse(
            title=get_string("ucp_index_connection_title"),
            description=get_string("ucp_connection_desc"),
            connection_type=connection_type,
            status=status,
            level=level,
        )

        isconnected = self.o365connected
        if (not canconnect and not isconnected) or (not candisconnect and isconnected):
            return page

        page.options_title = get_string("ucp_connection_options")
        opname = get_string("pluginname", "repository_office365")

        login_link = None
        if connection_type == "aadlogin":
            if candisconnect:
                login_link = UcpLink(
                    action="disconnectlogin",
                    label=get_string("ucp_connection_aadlogin_stop", a=opname),
                )
        elif canconnect:
            login_link = UcpLink(
                action="connectlogin",
                label=get_string("ucp_connection_aadlogin_start", a=opname),
            )
        if login_link is not None:
            page.options.append(
                ConnectionOption(
                    id="aadlogin",
                    title=get_string("ucp_connection_aadlogin"),
                    description=get_string("ucp_connection_aadlogin_desc_authcode", a=opname),
                    link=login_link,
                )
            )

        linked_link = None
        if connection_type == "linked":
            if candisconnect:
                linked_link = UcpLink(
                    action="disconnecttoken",
                    label=get_string("ucp_connection_linked_stop"),
                )
        elif connection_type == "aadlogin":
            if connection_capability(self.user, "both"):
                linked_link = UcpLink(
                    action="migratetolinked",
                    label=get_string("ucp_connection_linked_migrate"),
                )
        elif canconnect:
            linked_link = UcpLink(
                action="connecttoken",
                label=get_string("ucp_connection_linked_start"),
            )
        if linked_link is not None:
            page.options.append(
                ConnectionOption(
                    id="linked",
                    title=get_string("ucp_connection_linked"),
                    description=get_string("ucp_connection_linked_desc"),
                    link=linked_link,
                )
            )

        return page

    async def _calendar_context(self) -> dict[str, Any]:
        """Gather calendars, course groups and permissions for the calendar page.

        Raises:
            NotConnectedError: If the user is not connected to Office 365
        """
        await self.header()
        if not self.o365connected:
            raise NotConnectedError()

        calsync = CalendarSyncService(self.db, self.tokens)
        o365calendars = [
            OutlookCalendar(id=cal["id"], name=cal.get("name", ""))
            for cal in await calsync.get_calendars(self.user.id)
        ]
        primary_calid = o365calendars[0].id if o365calendars else ""

        result = await self.db.execute(
            select(O365Object.objectid).where(
                O365Object.type == ObjectType.GROUP.value,
                O365Object.subtype == ObjectSubtype.COURSE.value,
            )
        )
        course_group_ids = set(result.scalars().all())

        groups: dict[str, dict[str, Any]] = {}
        for group in await calsync.get_calendar_groups(self.user.id):
            mail = group.get("mail")
            if (
                mail
                and group.get("id") in course_group_ids
                and group.get("visibility") == "Public"
            ):
                groups[mail] = {
                    "mail": mail,
                    "name": group.get("displayName", ""),
                    "o365calid": primary_calid,
                }

        for mail, group in groups.items():
            o365calendars.append(OutlookCalendar(id=mail, name=group["name"], mail=mail))

        courses = await get_user_courses(self.db, self.user.id)
        return {
            "o365calendars": o365calendars,
            "primary_calid": primary_calid,
            "groups": groups,
            "usercourses": [
                CourseSummary(id=course.id, fullname=course.fullname)
                for course in courses.values()
            ],
            "cancreatesiteevents": can_manage_site_events(self.user),
            "cancreatecourseevents": await course_event_permissions(self.db, self.user),
        }

    async def _calendar_defaults(self, calsync: CalendarSyncService) -> CalendarSubscriptionsForm:
        defaults = CalendarSubscriptionsForm()
        for calsub in await calsync.get_subscriptions(self.user.id):
            caltype = CalendarType(calsub.caltype)
            if caltype == CalendarType.COURSE:
                defaults.coursecal[calsub.caltypeid] = CalendarChoice(
                    checked=True,
                    syncwith=calsub.o365calemail or calsub.o365calid or "",
                    syncbehav=calsub.syncbehav,
                )
                continue

            choice = CalendarChoice(
                checked=True,
                syncwith=calsub.o365calid or "",
                syncbehav=calsub.syncbehav,
            )
            if caltype == CalendarType.SITE:
                defaults.sitecal = choice
            else:
                defaults.usercal = choice
        return defaults

    async def calendar_page(self) -> CalendarPageResponse:
        """Calendar sync settings page, with the user's current choices."""
        context = await self._calendar_context()
        calsync = CalendarSyncService(self.db, self.tokens)
        return CalendarPageResponse(
            o365calendars=context["o365calendars"],
            usercourses=context["usercourses"],
            cancreatesiteevents=context["cancreatesiteevents"],
            cancreatecourseevents=context["cancreatecourseevents"],
            defaults=await self._calendar_defaults(calsync),
        )

    async def save_calendar(self, form: CalendarSubscriptionsForm) -> None:
        context = await self._calendar_context()
        calsync = CalendarSyncService(self.db, self.tokens)
        await calsync.update_subscriptions(
            self.user.id,
            form,
            context["primary_calid"],
            context["cancreatesiteevents"],
            context["cancreatecourseevents"],
            context["groups"],
        )

    async def get_onenote_disabled(self) -> bool:
        result = await self.db.execute(
            select(UserPreference.value).where(
                UserPreference.user_id == self.user.id,
                UserPreference.name == ONENOTE_PREFERENCE,
            )
        )
        return result.scalar_one_or_none() == "1"

    async def set_onenote_disabled(self, disabled: bool) -> None:
        result = await self.db.execute(
            select(UserPreference).where(
                UserPreference.user_id == self.user.id,
                UserPreference.name == ONENOTE_PREFERENCE,
            )
        )
        preference = result.scalar_one_or_none()
        if preference is None:
            preference = UserPreference(user_id=self.user.id, name=ONENOTE_PREFERENCE)
            self.db.add(preference)
        preference.value = "1" if disabled else "0"
        await self.db.flush()

    def _encode_state(self, connectiononly: bool) -> str:
        claims = {
            "sub": str(self.user.id),
            "nonce": token_urlsafe(16),
            "redirect": UCP_PATH,
            "exp": datetime.now(UTC) + timedelta(minutes=STATE_EXPIRATION_MINUTES),
        }
        if connectiononly:
            claims["connectiononly"] = True
        return jwt.encode(claims, self.settings.secret_key, algorithm=STATE_ALGORITHM)

    def _decode_state(self, state: str) -> dict[str, Any] | None:
        try:
            claims = jwt.decode(state, self.settings.secret_key, algorithms=[STATE_ALGORITHM])
        except JWTError as e:
            logger.warning("ucp_state_invalid", error_type=type(e).__name__)
            return None
        if claims.get("sub") != str(self.user.id):
            logger.warning("ucp_state_user_mismatch", user_id=self.user.id)
            return None
        return claims

    async def doauthrequest(self, uselogin: bool) -> tuple[str, str | None]:
        """Start the Office 365 authorization code flow.

        Args:
            uselogin: Switch the user to Office 365 login (otherwise the
                account is only linked)

        Returns:
            (url, state). The url is the control panel itself, with no
            state, when the user already logs in through Office 365.
        """
        await self.header()
        if self.o365connected and self.user.auth == AuthMethod.OIDC:
            return UCP_PATH, None

        login_hint = None
        prompt = None
        connection = await self._get_connection()
        if connection is not None:
            login_hint = connection.aadupn
            prompt = "login"

        state = self._encode_state(connectiononly=not uselogin)
        url = self.auth.get_authorization_url(
            state,
            self.settings.graph_resource,
            login_hint=login_hint,
            prompt=prompt,
        )
        logger.info(
            "ucp_auth_request",
            user_id=self.user.id,
            uselogin=uselogin,
            matched=connection is not None,
        )
        return url, state

    async def handle_callback(self, code: str, state: str) -> str:
        """Finish the authorization code flow.

        Returns:
            URL to send the user to next
        """
        claims = self._decode_state(state)
        if claims is None:
            return f"{UCP_PATH}/connection?" + urlencode({"error": "invalid_state"})

        try:
            result = await self.auth.acquire_token_by_code(code, self.settings.graph_resource)
        except O365AuthenticationError as e:
            logger.warning("ucp_callback_token_failed", user_id=self.user.id, error=str(e))
            return f"{UCP_PATH}/connection?" + urlencode({"error": "token_exchange_failed"})

        id_claims = result.get("id_token_claims") or {}
        oid = id_claims.get("oid") or id_claims.get("sub")
        upn = id_claims.get("upn") or id_claims.get("preferred_username") or ""
        if not oid:
            logger.warning("ucp_callback_missing_oid", user_id=self.user.id)
            return f"{UCP_PATH}/connection?" + urlencode({"error": "missing_user_info"})

        result_obj = await self.db.execute(
            select(O365Object).where(
                O365Object.type == ObjectType.USER.value,
                O365Object.objectid == oid,
            )
        )
        user_object = result_obj.scalars().first()
        if user_object is not None and user_object.moodleid != self.user.id:
            logger.warning(
                "ucp_callback_account_taken",
                user_id=self.user.id,
                other_user_id=user_object.moodleid,
            )
            return f"{UCP_PATH}/connection?" + urlencode({"o365accountconnected": "true"})

        await self.tokens.store_token(self.user.id, self.settings.graph_resource, result)

        if user_object is None:
            user_object = O365Object(
                type=ObjectType.USER.value,
                subtype=ObjectSubtype.NONE.value,
                objectid=oid,
                moodleid=self.user.id,
            )
            self.db.add(user_object)
        user_object.o365name = upn

        if not claims.get("connectiononly"):
            self.user.auth = AuthMethod.OIDC
        await self.db.flush()

        logger.info(
            "ucp_connected",
            user_id=self.user.id,
            uselogin=not claims.get("connectiononly"),
        )
        return claims.get("redirect") or UCP_PATH

    async def disconnect(self, just_remove_tokens: bool, keep_tokens: bool) -> str:
        """Disconnect the user from Office 365.

        Args:
            just_remove_tokens: Only drop the stored tokens, leave the login
                method alone (disconnecting a linked account)
            keep_tokens: Keep the tokens while switching back to LMS login
                (migrating from Office 365 login to a linked account)

        Returns:
            URL to send the user to next
        """
        if not just_remove_tokens:
            self.user.auth = AuthMethod.MANUAL

        if not keep_tokens:
            await self.tokens.delete_user_tokens(self.user.id)
            await self.db.execute(
                delete(O365Object).where(
                    O365Object.type == ObjectType.USER.value,
                    O365Object.moodleid == self.user.id,
                )
            )
            await self.db.execute(
                delete(O365Connection).where(O365Connection.muserid == self.user.id)
            )

        await self.db.flush()
        logger.info(
            "ucp_disconnected",
            user_id=self.user.id,
            just_remove_tokens=just_remove_tokens,
            keep_tokens=keep_tokens,
        )
        return UCP_PATH
