"""
Sync configuration.

Defaults mirror the values the web client shipped with. They can be
overridden from a YAML settings file and from environment variables:

```yaml
sync:
  client_id: "1234.apps.googleusercontent.com"
  api_key: "AIza..."
  file_name: "hololive_card_data.json"
  save_debounce_seconds: 2.0
  exclude_keys: ["cardData", "releaseData"]
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

# Persistent store keys
CLIENT_ID_KEY = "googleClientId"
FILE_ID_KEY = "driveFileId"

# Session store keys
TOKEN_KEY = "gapi_token"
RELOAD_FLAG_KEY = "googleDriveDataLoaded"
VIEWING_KEY = "viewingStorageData"
READ_ONLY_KEY = "readOnlyMode"

DEFAULT_SETTINGS_PATH = Path.home() / ".appdata-sync" / "settings.yaml"

DEFAULT_INCLUDE_PATTERNS = [
    r"^count_",
    r"^filterState$",
    r"^viewMode$",
    r"^binderViewMode$",
    r"^darkMode$",
    r"^deckData$",
    r"^binderCollection$",
]

DEFAULT_EXCLUDE_KEYS = [
    "cardData",
    "releaseData",
    "dataTimestamp",
    CLIENT_ID_KEY,
    FILE_ID_KEY,
]


@dataclass
class SyncConfig:
    """Configuration for the sync service."""

    # Credentials
    client_id: str | None = None
    client_secret: str | None = None
    api_key: str | None = None

    # Remote file
    file_name: str = "hololive_card_data.json"
    space: str = "appDataFolder"
    scope: str = "https://www.googleapis.com/auth/drive.appdata"

    # Key selection
    include_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_INCLUDE_PATTERNS))
    exclude_keys: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_KEYS))

    # Timing
    save_debounce_seconds: float = 2.0
    saved_display_seconds: float = 2.0
    library_wait_seconds: float = 10.0
    library_poll_interval_seconds: float = 0.1
    reload_delay_seconds: float = 0.5
    request_timeout_seconds: float = 30.0

    # Local persistence
    data_dir: Path = field(default_factory=lambda: Path.home() / ".appdata-sync")

    @property
    def store_path(self) -> Path:
        """Path of the JSON file backing the persistent store."""
        return self.data_dir / "local_storage.json"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncConfig:
        """Build a config from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if "data_dir" in values and values["data_dir"] is not None:
            values["data_dir"] = Path(values["data_dir"]).expanduser()
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Path) -> SyncConfig:
        """Load config from the ``sync`` section of a YAML settings file.

        A missing file yields the defaults.
        """
        return cls.from_dict(_load_section(path))

    @classmethod
    def from_env(cls, base: SyncConfig | None = None) -> SyncConfig:
        """Apply environment overrides on top of ``base``."""
        config = base or cls()

        client_id = os.environ.get("APPDATA_SYNC_CLIENT_ID")
        client_secret = os.environ.get("APPDATA_SYNC_CLIENT_SECRET")
        api_key = os.environ.get("APPDATA_SYNC_API_KEY")
        data_dir = os.environ.get("APPDATA_SYNC_DATA_DIR")
        file_name = os.environ.get("APPDATA_SYNC_FILE_NAME")
        debounce = os.environ.get("APPDATA_SYNC_DEBOUNCE_SECONDS")

        if client_id:
            config.client_id = client_id
        if client_secret:
            config.client_secret = client_secret
        if api_key:
            config.api_key = api_key
        if data_dir:
            config.data_dir = Path(data_dir).expanduser()
        if file_name:
            config.file_name = file_name
        if debounce:
            try:
                config.save_debounce_seconds = float(debounce)
            except ValueError as e:
                raise ConfigurationError(
                    f"APPDATA_SYNC_DEBOUNCE_SECONDS must be a number, got {debounce!r}"
                ) from e

        return config


def load_config(path: Path | None = None) -> SyncConfig:
    """Load configuration: defaults, then the YAML file, then environment."""
    return SyncConfig.from_env(SyncConfig.from_yaml(path or DEFAULT_SETTINGS_PATH))


def _load_section(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    try:
        content = yaml.safe_load(path.read_text()) or {}
    except (yaml.YAMLError, OSError) as e:
        raise ConfigurationError(f"Cannot read settings file: {e}", str(path)) from e

    if not isinstance(content, dict):
        raise ConfigurationError("Settings file must contain a mapping", str(path))

    section = content.get("sync", {}) or {}
    if not isinstance(section, dict):
        raise ConfigurationError("'sync' section must be a mapping", str(path))
    return section
