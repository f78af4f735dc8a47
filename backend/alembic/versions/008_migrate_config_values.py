"""Migrate legacy plugin configuration values.

Revision ID: 008
Revises: 007
Create Date: 2026-09-24

"""

import json
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "008"
down_revision: str | None = "007"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

PLUGIN = "local_o365"

DEFAULT_FIELDMAP = [
    "givenName/firstname/always",
    "surname/lastname/always",
    "mail/email/always",
    "city/city/always",
    "country/country/always",
    "department/department/always",
    "preferredLanguage/lang/always",
]

config_plugins = sa.table(
    "config_plugins",
    sa.column("plugin", sa.String),
    sa.column("name", sa.String),
    sa.column("value", sa.Text),
)


def _load(connection: sa.engine.Connection) -> dict[str, str | None]:
    rows = connection.execute(
        sa.select(config_plugins.c.name, config_plugins.c.value).where(
            config_plugins.c.plugin == PLUGIN
        )
    )
    return {name: value for name, value in rows}


def _set(
    connection: sa.engine.Connection,
    config: dict[str, str | None],
    name: str,
    value: str,
) -> None:
    if name in config:
        connection.execute(
            sa.update(config_plugins)
            .where(config_plugins.c.plugin == PLUGIN, config_plugins.c.name == name)
            .values(value=value)
        )
    else:
        connection.execute(
            sa.insert(config_plugins).values(plugin=PLUGIN, name=name, value=value)
        )
    config[name] = value


def upgrade() -> None:
    connection = op.get_bind()
    config = _load(connection)
    tenant = config.get("tenant")

    if not config.get("sharepointlink") and tenant and config.get("parentsiteuri") is not None:
        _set(
            connection,
            config,
            "sharepointlink",
            f"https://{tenant}.sharepoint.com/{config['parentsiteuri']}",
        )

    if tenant:
        if not config.get("aadtenant"):
            _set(connection, config, "aadtenant", f"{tenant}.onmicrosoft.com")
        if not config.get("odburl"):
            _set(connection, config, "odburl", f"{tenant}-my.sharepoint.com")

    if config.get("aadsync") == "1":
        _set(connection, config, "aadsync", "create")

    # Older releases stored any non-empty value; "0" means disabled
    creategroups = config.get("creategroups")
    if creategroups and creategroups not in ("0", "onall", "oncustom", "off"):
        _set(connection, config, "creategroups", "onall")

    if "fieldmap" not in config:
        _set(connection, config, "fieldmap", json.dumps(DEFAULT_FIELDMAP))


def downgrade() -> None:
    # Values are rewritten in place and cannot be restored
    pass
