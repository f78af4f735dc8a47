"""Key/value plugin configuration store.

Runtime configuration that administrators change without redeploying
(feature flags, last cron run times, per-course JSON maps) lives in the
``config_plugins`` table. Static deployment settings live in
``lms_o365.config`` instead.
"""

import json
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from lms_o365.config import get_settings
from lms_o365.core.logging import get_logger
from lms_o365.models.config import PluginConfig

logger = get_logger(__name__)

DEFAULT_PLUGIN = "local_o365"


class ConfigService:
    """Read and write plugin configuration values."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, name: str, plugin: str) -> PluginConfig | None:
        result = await self.db.execute(
            select(PluginConfig).where(
                PluginConfig.plugin == plugin,
                PluginConfig.name == name,
            )
        )
        return result.scalar_one_or_none()

    async def get(
        self,
        name: str,
        plugin: str = DEFAULT_PLUGIN,
        default: str | None = None,
    ) -> str | None:
        """Get a configuration value, or ``default`` when unset."""
        row = await self._load(name, plugin)
        if row is None or row.value is None:
            return default
        return row.value

    async def set(self, name: str, value: Any, plugin: str = DEFAULT_PLUGIN) -> None:
        """Create or update a configuration value.

        Values are stored as text; non-string values are converted with str().
        """
        text = value if value is None or isinstance(value, str) else str(value)
        row = await self._load(name, plugin)
        if row is None:
            self.db.add(PluginConfig(plugin=plugin, name=name, value=text))
        else:
            row.value = text
        await self.db.flush()
        logger.debug("config_set", plugin=plugin, name=name)

    async def unset(self, name: str, plugin: str = DEFAULT_PLUGIN) -> None:
        await self.db.execute(
            delete(PluginConfig).where(
                PluginConfig.plugin == plugin,
                PluginConfig.name == name,
            )
        )
        logger.debug("config_unset", plugin=plugin, name=name)

    async def get_json(
        self,
        name: str,
        default: Any = None,
        plugin: str = DEFAULT_PLUGIN,
    ) -> Any:
        """Get a JSON-encoded value.

        Missing, empty or malformed values yield ``default``.
        """
        raw = await self.get(name, plugin)
        if not raw:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("config_json_invalid", plugin=plugin, name=name)
            return default

    async def set_json(self, name: str, value: Any, plugin: str = DEFAULT_PLUGIN) -> None:
        await self.set(name, json.dumps(value), plugin)

    async def is_configured(self) -> bool:
        """Check whether the Azure AD application and tenant are set up."""
        settings = get_settings()
        if not settings.is_o365_configured:
            return False
        tenant = settings.aad_tenant or await self.get("aadtenant")
        return bool(tenant)
