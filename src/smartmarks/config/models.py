"""Configuration models describing Smartmarks settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SmartmarksBaseModel(BaseModel):
    """Shared configuration for Smartmarks settings models."""

    model_config = ConfigDict(extra="forbid")


class StoreSettings(SmartmarksBaseModel):
    """Bookmark store selection.

    Attributes:
        backend: ``file`` persists to ``path``; ``memory`` keeps rows in-process.
        path: Location of the JSON store used by the ``file`` backend.
    """

    backend: Literal["file", "memory"] = "file"
    path: str = "~/.smartmarks/bookmarks.json"

    @property
    def resolved_path(self) -> Path:
        """Return ``path`` with the user directory expanded."""
        return Path(self.path).expanduser()


class SessionSettings(SmartmarksBaseModel):
    """Identity used when the CLI does not receive ``--owner``.

    Attributes:
        owner_id: Owner scope; ``None`` falls back to the OS user name.
    """

    owner_id: Optional[str] = None


class SubscriptionSettings(SmartmarksBaseModel):
    """Change stream settings.

    Attributes:
        stop_timeout_seconds: Time allowed for the dispatcher to exit on teardown.
    """

    stop_timeout_seconds: float = Field(default=5.0, gt=0)


class LoggingSettings(SmartmarksBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"


class CLIOptions(SmartmarksBaseModel):
    """CLI presentation defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        date_format: ``strftime`` format used for the "Added" column.
    """

    quiet_default: bool = False
    date_format: str = "%Y-%m-%d"


class SmartmarksConfig(SmartmarksBaseModel):
    """Top-level configuration for Smartmarks.

    Attributes:
        store: Store backend selection.
        session: Default identity.
        subscription: Change stream settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    store: StoreSettings = Field(default_factory=StoreSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    subscription: SubscriptionSettings = Field(default_factory=SubscriptionSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "SmartmarksBaseModel",
    "StoreSettings",
    "SessionSettings",
    "SubscriptionSettings",
    "LoggingSettings",
    "CLIOptions",
    "SmartmarksConfig",
]
