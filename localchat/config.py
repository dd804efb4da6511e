"""localchat application configuration.

Settings come from a single YAML file, ``localchat.settings.yaml`` in the
working directory by default. Set ``LOCALCHAT_SETTINGS`` to point somewhere
else. Every key is optional; a missing file means all defaults.

Example::

    server:
      port: 3000
      static_dir: public
    chat:
      outbound_queue_size: 256
    files:
      storage_dir: /var/tmp/local-chat-files
      metadata_db: blobs.duckdb
    logging:
      level: debug

Relative paths under ``files`` and ``server.static_dir`` are resolved
against the directory that holds the settings file.
"""
from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("localchat.settings.yaml")
SETTINGS_ENV_VAR = "LOCALCHAT_SETTINGS"

# 50MB, for both WebSocket frames and uploads
DEFAULT_MAX_PAYLOAD_BYTES = 50 * 1024 * 1024

IN_MEMORY_DB = ":memory:"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _default_storage_dir() -> str:
    return str(Path(tempfile.gettempdir()) / "local-chat-files")


def _resolve(path_value: str, base_dir: Path) -> str:
    path = Path(path_value).expanduser()
    if path.is_absolute():
        return str(path)
    return str(base_dir / path)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:       str = "0.0.0.0"
    port:       int = 3000
    static_dir: str = "public"


class ChatSettings(BaseModel):
    history_size:        int = 100
    outbound_queue_size: int = 256
    max_payload_bytes:   int = DEFAULT_MAX_PAYLOAD_BYTES

    @field_validator("history_size", "outbound_queue_size", "max_payload_bytes")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value


class FileSettings(BaseModel):
    storage_dir:         str = Field(default_factory=_default_storage_dir)
    metadata_db:         str = IN_MEMORY_DB
    max_file_size_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES


class LoggingSettings(BaseModel):
    level: str = "info"


class AppConfig(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    files:   FileSettings    = Field(default_factory=FileSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _settings_path() -> Path:
    override = os.environ.get(SETTINGS_ENV_VAR)
    return Path(override) if override else SETTINGS_FILE


def load_config(settings_path: Optional[Path] = None) -> AppConfig:
    """Load settings from YAML into an *AppConfig*.

    Args:
        settings_path: Settings file. Defaults to ``$LOCALCHAT_SETTINGS`` or
            ``localchat.settings.yaml`` in the working directory.
    """
    path = Path(settings_path) if settings_path else _settings_path()
    data = _load_yaml(path)
    config = AppConfig(**data)

    base_dir = path.resolve().parent
    files = config.files
    files.storage_dir = _resolve(files.storage_dir, base_dir)
    if files.metadata_db != IN_MEMORY_DB:
        files.metadata_db = _resolve(files.metadata_db, base_dir)
    config.server.static_dir = _resolve(config.server.static_dir, base_dir)

    logger.info(
        "Settings loaded (server=%s:%s, storage_dir=%s)",
        config.server.host,
        config.server.port,
        files.storage_dir,
    )
    return config


_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppConfig]) -> None:
    """Replace the process-wide configuration (None forces a reload)."""
    global _config
    _config = config
