"""Tests for the plugin configuration store."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lms_o365.models.config import PluginConfig
from lms_o365.services.config_service import ConfigService


def make_db(row=None):
    db = MagicMock()
    result = MagicMock()
    result.scalar_one_or_none.return_value = row
    db.execute = AsyncMock(return_value=result)
    db.flush = AsyncMock()
    return db


class TestGetSet:
    """Tests for reading and writing values."""

    @pytest.mark.asyncio
    async def test_get_returns_value(self):
        db = make_db(PluginConfig(plugin="local_o365", name="creategroups", value="onall"))

        assert await ConfigService(db).get("creategroups") == "onall"

    @pytest.mark.asyncio
    async def test_get_default_when_unset(self):
        assert await ConfigService(make_db()).get("missing", default="x") == "x"

    @pytest.mark.asyncio
    async def test_set_inserts(self):
        db = make_db()

        await ConfigService(db).set("calsyncinlastrun", 1700000000)

        added = db.add.call_args.args[0]
        assert added.name == "calsyncinlastrun"
        assert added.value == "1700000000"
        db.flush.assert_called_once()

    @pytest.mark.asyncio
    async def test_set_updates(self):
        row = PluginConfig(plugin="local_o365", name="creategroups", value="off")
        db = make_db(row)

        await ConfigService(db).set("creategroups", "oncustom")

        assert row.value == "oncustom"
        db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_unset(self):
        db = make_db()

        await ConfigService(db).unset("creategroups")

        db.execute.assert_called_once()


class TestJson:
    @pytest.mark.asyncio
    async def test_get_json(self):
        db = make_db(PluginConfig(plugin="local_o365", name="m", value='{"5": true}'))

        assert await ConfigService(db).get_json("m") == {"5": True}

    @pytest.mark.asyncio
    async def test_malformed_json_returns_default(self):
        db = make_db(PluginConfig(plugin="local_o365", name="m", value="{oops"))

        assert await ConfigService(db).get_json("m", default={}) == {}

    @pytest.mark.asyncio
    async def test_set_json_encodes(self):
        service = ConfigService(make_db())
        service.set = AsyncMock()

        await service.set_json("m", {"5": True})

        service.set.assert_called_once_with("m", '{"5": true}', "local_o365")


class TestIsConfigured:
    @pytest.mark.asyncio
    async def test_requires_credentials(self):
        settings = MagicMock(is_o365_configured=False)
        with patch("lms_o365.services.config_service.get_settings", return_value=settings):
            assert await ConfigService(make_db()).is_configured() is False

    @pytest.mark.asyncio
    async def test_tenant_from_settings(self):
        settings = MagicMock(is_o365_configured=True, aad_tenant="contoso.onmicrosoft.com")
        with patch("lms_o365.services.config_service.get_settings", return_value=settings):
            assert await ConfigService(make_db()).is_configured() is True

    @pytest.mark.asyncio
    async def test_tenant_from_store(self):
        settings = MagicMock(is_o365_configured=True, aad_tenant="")
        db = make_db(PluginConfig(plugin="local_o365", name="aadtenant", value="contoso"))
        with patch("lms_o365.services.config_service.get_settings", return_value=settings):
            assert await ConfigService(db).is_configured() is True

    @pytest.mark.asyncio
    async def test_no_tenant(self):
        settings = MagicMock(is_o365_configured=True, aad_tenant="")
        with patch("lms_o365.services.config_service.get_settings", return_value=settings):
            assert await ConfigService(make_db()).is_configured() is False
