"""Key/value plugin configuration store."""

from sqlalchemy import Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from lms_o365.database import Base


class PluginConfig(Base):
    """One configuration value for a plugin."""

    __tablename__ = "config_plugins"
    __table_args__ = (UniqueConstraint("plugin", "name", name="uq_config_plugins"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    plugin: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PluginConfig {self.plugin}/{self.name}>"
