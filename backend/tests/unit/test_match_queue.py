"""Tests for the manual match queue."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lms_o365.models.o365 import MatchQueueItem, O365Connection, O365Object
from lms_o365.models.user import AuthMethod, User
from lms_o365.services.match_queue_service import MatchQueueService, process_match_queue
from lms_o365.strings import get_string


def make_item(**kwargs):
    values = {
        "id": 1,
        "musername": "jdoe",
        "o365username": "jdoe@contoso.com",
        "openidconnect": False,
        "completed": False,
        "errormessage": "",
    }
    values.update(kwargs)
    return MatchQueueItem(**values)


def make_service(user=None, aad_user=None, user_conn=None, upn_conn=None, user_object=None):
    db = MagicMock()
    db.flush = AsyncMock()
    service = MatchQueueService(db)
    service._find_user = AsyncMock(return_value=user)
    service.lookup_aad_user = AsyncMock(return_value=aad_user)
    service._connection_for_user = AsyncMock(return_value=user_conn)
    service._connection_for_upn = AsyncMock(return_value=upn_conn)
    service._user_object = AsyncMock(return_value=user_object)
    return service, db


def make_user(auth=AuthMethod.MANUAL):
    return User(id=5, username="jdoe", email="jdoe@example.com", auth=auth)


def make_aad_user():
    return MagicMock(id="aad-guid", user_principal_name="JDoe@contoso.com")


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_normalizes_usernames(self):
        db = MagicMock()
        db.flush = AsyncMock()

        item = await MatchQueueService(db).enqueue("  JDoe ", " jdoe@contoso.com ")

        assert item.musername == "jdoe"
        assert item.o365username == "jdoe@contoso.com"
        assert item.completed is False
        db.add.assert_called_once_with(item)


class TestProcessItem:
    """Tests for validating a queued match."""

    @pytest.mark.asyncio
    async def test_successful_match(self):
        service, db = make_service(user=make_user(), aad_user=make_aad_user())
        item = make_item(openidconnect=True)

        assert await service.process_item(item) is True

        connection = db.add.call_args.args[0]
        assert isinstance(connection, O365Connection)
        assert connection.muserid == 5
        assert connection.aadupn == "JDoe@contoso.com"
        assert connection.uselogin is True
        assert item.completed is True
        assert item.errormessage == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("overrides", "string_id"),
        [
            ({"user": None}, "task_processmatchqueue_err_nomuser"),
            ({"aad_user": None}, "task_processmatchqueue_err_noo365user"),
            ({"user_conn": MagicMock()}, "task_processmatchqueue_err_museralreadymatched"),
            ({"upn_conn": MagicMock()}, "task_processmatchqueue_err_o365useralreadymatched"),
        ],
    )
    async def test_rejections(self, overrides, string_id):
        kwargs = {"user": make_user(), "aad_user": make_aad_user(), **overrides}
        service, db = make_service(**kwargs)
        item = make_item()

        assert await service.process_item(item) is False

        assert item.completed is True
        assert item.errormessage == get_string(string_id)
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_oidc_user_rejected(self):
        service, _ = make_service(user=make_user(AuthMethod.OIDC), aad_user=make_aad_user())
        item = make_item()

        assert await service.process_item(item) is False
        assert item.errormessage == get_string("task_processmatchqueue_err_museralreadyo365")

    @pytest.mark.asyncio
    async def test_aad_user_connected_elsewhere(self):
        other = O365Object(type="user", objectid="aad-guid", moodleid=99)
        service, _ = make_service(
            user=make_user(), aad_user=make_aad_user(), user_object=other
        )
        item = make_item()

        assert await service.process_item(item) is False
        assert item.errormessage == get_string(
            "task_processmatchqueue_err_o365useralreadyconnected"
        )

    @pytest.mark.asyncio
    async def test_own_user_object_allowed(self):
        mine = O365Object(type="user", objectid="aad-guid", moodleid=5)
        service, _ = make_service(user=make_user(), aad_user=make_aad_user(), user_object=mine)

        assert await service.process_item(make_item()) is True


def make_session():
    db = MagicMock()
    db.commit = AsyncMock()
    nested = MagicMock()
    nested.__aenter__ = AsyncMock(return_value=None)
    nested.__aexit__ = AsyncMock(return_value=None)
    db.begin_nested = MagicMock(return_value=nested)
    session_cm = MagicMock()
    session_cm.__aenter__ = AsyncMock(return_value=db)
    session_cm.__aexit__ = AsyncMock(return_value=None)
    return db, MagicMock(return_value=session_cm)


class TestProcessMatchQueueTask:
    """Tests for the match queue cron task."""

    @pytest.mark.asyncio
    async def test_skipped_when_not_configured(self):
        settings = MagicMock(is_o365_configured=False)
        with patch("lms_o365.services.match_queue_service.get_settings", return_value=settings):
            result = await process_match_queue()

        assert result["status"] == "skipped"

    @pytest.mark.asyncio
    async def test_counts_outcomes(self):
        settings = MagicMock(is_o365_configured=True, match_queue_batch_size=100)
        db, maker = make_session()
        service = MagicMock()
        service.get_pending_items = AsyncMock(
            return_value=[make_item(id=1), make_item(id=2), make_item(id=3)]
        )
        service.process_item = AsyncMock(side_effect=[True, False, RuntimeError("no graph")])

        with (
            patch("lms_o365.services.match_queue_service.get_settings", return_value=settings),
            patch("lms_o365.services.match_queue_service.async_session_maker", maker),
            patch("lms_o365.services.match_queue_service.MatchQueueService", return_value=service),
        ):
            result = await process_match_queue()

        assert result["items_processed"] == 3
        assert result["items_matched"] == 1
        assert result["items_rejected"] == 1
        assert result["items_failed"] == 1
        assert result["status"] == "partial"
        assert result["errors"] == ["Item 3: no graph"]
        db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_no_pending_items(self):
        settings = MagicMock(is_o365_configured=True, match_queue_batch_size=100)
        db, maker = make_session()
        service = MagicMock()
        service.get_pending_items = AsyncMock(return_value=[])

        with (
            patch("lms_o365.services.match_queue_service.get_settings", return_value=settings),
            patch("lms_o365.services.match_queue_service.async_session_maker", maker),
            patch("lms_o365.services.match_queue_service.MatchQueueService", return_value=service),
        ):
            result = await process_match_queue()

        assert result["status"] == "success"
        assert result["items_processed"] == 0
        db.commit.assert_not_called()
