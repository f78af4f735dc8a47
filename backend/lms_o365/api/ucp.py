"""User control panel routes.

Connecting to Office 365 runs the authorization code flow: ``/connectlogin``
and ``/connecttoken`` redirect to Azure AD and set a short-lived state
cookie, and ``/callback`` checks it before the code is redeemed.
"""

import hmac

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse

from lms_o365.api.deps import CurrentUser, DbSession
from lms_o365.config import get_settings
from lms_o365.core.exceptions import NotConnectedError
from lms_o365.core.logging import get_logger
from lms_o365.core.permissions import connection_capability, require_connection_capability
from lms_o365.core.rate_limit import auth_limit, limiter
from lms_o365.models.user import User
from lms_o365.schemas.calendar import CalendarPageResponse, CalendarSubscriptionsForm
from lms_o365.schemas.ucp import (
    ConnectionPageResponse,
    OneNotePreference,
    UcpIndexResponse,
    UcpRedirect,
)
from lms_o365.services.ucp_service import UCP_PATH, UcpService

logger = get_logger(__name__)

router = APIRouter(prefix="/ucp", tags=["ucp"])
settings = get_settings()

STATE_COOKIE = "o365_state"
STATE_COOKIE_MAX_AGE = 300


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


async def _start_auth(service: UcpService, uselogin: bool) -> RedirectResponse:
    url, state = await service.doauthrequest(uselogin)
    response = _redirect(url)
    if state is not None:
        response.set_cookie(
            key=STATE_COOKIE,
            value=state,
            httponly=True,
            secure=settings.azure_ad_redirect_uri.startswith("https://"),
            samesite="lax",
            max_age=STATE_COOKIE_MAX_AGE,
            path=UCP_PATH,
        )
    return response


@router.get("", response_model=UcpIndexResponse)
async def ucp_index(db: DbSession, current_user: CurrentUser) -> UcpIndexResponse:
    """Control panel overview: connection status and available features."""
    return await UcpService(db, current_user).index()


@router.get("/connection", response_model=ConnectionPageResponse)
async def ucp_connection(
    db: DbSession,
    current_user: CurrentUser,
    o365accountconnected: bool = Query(False),
) -> ConnectionPageResponse:
    """Connection management page.

    ``o365accountconnected`` is set when the callback refused an Office 365
    account already linked to another user.
    """
    return await UcpService(db, current_user).connection_page(o365accountconnected)


@router.get("/calendar", response_model=CalendarPageResponse)
async def ucp_calendar(db: DbSession, current_user: CurrentUser) -> CalendarPageResponse:
    try:
        return await UcpService(db, current_user).calendar_page()
    except NotConnectedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.post("/calendar", response_model=UcpRedirect)
async def ucp_calendar_save(
    form: CalendarSubscriptionsForm,
    db: DbSession,
    current_user: CurrentUser,
) -> UcpRedirect:
    """Save calendar sync settings."""
    try:
        await UcpService(db, current_user).save_calendar(form)
    except NotConnectedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    logger.info("ucp_calendar_saved", user_id=current_user.id)
    return UcpRedirect(url=UCP_PATH)


@router.get("/onenote", response_model=OneNotePreference)
async def ucp_onenote(db: DbSession, current_user: CurrentUser) -> OneNotePreference:
    disabled = await UcpService(db, current_user).get_onenote_disabled()
    return OneNotePreference(disableo365onenote=disabled)


@router.post("/onenote", response_model=UcpRedirect)
async def ucp_onenote_save(
    preference: OneNotePreference,
    db: DbSession,
    current_user: CurrentUser,
) -> UcpRedirect:
    await UcpService(db, current_user).set_onenote_disabled(preference.disableo365onenote)
    return UcpRedirect(url=UCP_PATH)


@router.get("/connectlogin")
@limiter.limit(auth_limit)
async def ucp_connect_login(
    request: Request,
    db: DbSession,
    current_user: User = Depends(require_connection_capability("connect")),
) -> RedirectResponse:
    """Connect to Office 365 and switch to Office 365 login."""
    return await _start_auth(UcpService(db, current_user), uselogin=True)


@router.get("/connecttoken")
@limiter.limit(auth_limit)
async def ucp_connect_token(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
) -> RedirectResponse:
    """Link an Office 365 account while keeping the LMS login."""
    service = UcpService(db, current_user)
    await service.header()
    if not service.o365connected:
        connection_capability(current_user, "connect", require=True)
    return await _start_auth(service, uselogin=False)


@router.post("/disconnecttoken", response_model=UcpRedirect)
@limiter.limit(auth_limit)
async def ucp_disconnect_token(
    request: Request,
    db: DbSession,
    current_user: User = Depends(require_connection_capability("disconnect")),
) -> UcpRedirect:
    """Unlink the Office 365 account."""
    url = await UcpService(db, current_user).disconnect(just_remove_tokens=True, keep_tokens=False)
    return UcpRedirect(url=url)


@router.post("/disconnectlogin", response_model=UcpRedirect)
@limiter.limit(auth_limit)
async def ucp_disconnect_login(
    request: Request,
    db: DbSession,
    current_user: User = Depends(require_connection_capability("disconnect")),
) -> UcpRedirect:
    """Stop logging in through Office 365 and drop the connection."""
    url = await UcpService(db, current_user).disconnect(just_remove_tokens=False, keep_tokens=False)
    return UcpRedirect(url=url)


@router.post("/migratetolinked", response_model=UcpRedirect)
@limiter.limit(auth_limit)
async def ucp_migrate_to_linked(
    request: Request,
    db: DbSession,
    current_user: User = Depends(require_connection_capability("both")),
) -> UcpRedirect:
    """Switch from Office 365 login to a linked account, keeping the tokens."""
    url = await UcpService(db, current_user).disconnect(just_remove_tokens=False, keep_tokens=True)
    return UcpRedirect(url=url)


@router.get("/callback")
@limiter.limit(auth_limit)
async def ucp_callback(
    request: Request,
    db: DbSession,
    current_user: CurrentUser,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> RedirectResponse:
    """Handle the Azure AD redirect after a connect request."""
    failure_url = f"{UCP_PATH}/connection"

    if error or not code:
        logger.warning("ucp_callback_error", user_id=current_user.id, error=error)
        response = _redirect(f"{failure_url}?error=authorization_failed")
        response.delete_cookie(STATE_COOKIE, path=UCP_PATH)
        return response

    expected_state = request.cookies.get(STATE_COOKIE)
    if not state or not expected_state:
        logger.warning(
            "ucp_callback_missing_state",
            has_param=bool(state),
            has_cookie=bool(expected_state),
        )
        return _redirect(f"{failure_url}?error=invalid_state")

    if not hmac.compare_digest(state, expected_state):
        logger.warning("ucp_callback_state_mismatch", user_id=current_user.id)
        return _redirect(f"{failure_url}?error=invalid_state")

    url = await UcpService(db, current_user).handle_callback(code, state)
    response = _redirect(url)
    response.delete_cookie(STATE_COOKIE, path=UCP_PATH)
    return response
