"""
AdbSync configuration management.

Provides centralized configuration with validation using Pydantic.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from adbsync.core.models import ConflictPolicy


def _default_data_directory() -> Path:
    return Path.home() / ".adbsync"


class LoggingConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    file_enabled: bool = True
    console_enabled: bool = True
    json_format: bool = False
    log_directory: Path = Field(default_factory=lambda: _default_data_directory() / "logs")

    @field_validator("log_directory", mode="before")
    @classmethod
    def expand_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()


class RemoteConfig(BaseModel):
    """Configuration for the adb transport."""

    adb_path: str | None = None
    command_timeout_seconds: float = Field(default=60.0, gt=0)
    listing_timeout_seconds: float = Field(default=300.0, gt=0)
    transfer_timeout_seconds: float = Field(default=3600.0, gt=0)
    scan_root: str = "/sdcard"
    kill_grace_seconds: float = Field(default=0.2, ge=0)
    device_poll_interval_seconds: float = Field(default=3.0, gt=0)


class RetryConfig(BaseModel):
    """Configuration for retry with exponential backoff."""

    max_attempts: int = Field(default=3, ge=1, le=20)
    initial_delay_seconds: float = Field(default=1.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_delay_seconds: float = Field(default=30.0, ge=0)


class SyncConfig(BaseModel):
    """Configuration for sync runs."""

    default_target_path: Path = Field(default_factory=Path.home)
    conflict_policy: ConflictPolicy = ConflictPolicy.ASK_EACH_TIME
    enable_hash_comparison: bool = False
    hash_authoritative: bool = True
    max_concurrent_transfers: int = Field(default=3, ge=1, le=16)
    show_hidden_files: bool = False
    preserve_timestamps: bool = True
    last_sync_paths: dict[str, str] = Field(default_factory=dict)

    @field_validator("default_target_path", mode="before")
    @classmethod
    def expand_target(cls, v: str | Path) -> Path:
        return Path(v).expanduser()


class FilterRuleConfig(BaseModel):
    """A persisted include/exclude filter rule."""

    pattern: str
    type: Literal["include", "exclude"] = "include"
    is_regex: bool = False
    enabled: bool = True
    description: str = ""


class FilterConfig(BaseModel):
    """Configuration for path filter rules."""

    rules: list[FilterRuleConfig] = Field(default_factory=list)


class AdbSyncConfig(BaseModel):
    """Main AdbSync configuration."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    data_directory: Path = Field(default_factory=_default_data_directory)
    history_limit: int = Field(default=100, ge=1)

    @field_validator("data_directory", mode="before")
    @classmethod
    def expand_data_path(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @classmethod
    def load(cls, config_path: Path | None = None) -> AdbSyncConfig:
        """Load configuration from file or create default."""
        if config_path is None:
            config_path = default_config_path()

        if config_path.exists():
            with open(config_path) as f:
                data = json.load(f)
            return cls.model_validate(data)

        return cls()

    def save(self, config_path: Path | None = None) -> None:
        """Save configuration to file."""
        if config_path is None:
            config_path = default_config_path()

        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

    def ensure_directories(self) -> None:
        """Create all required directories."""
        self.data_directory.mkdir(parents=True, exist_ok=True)
        self.logging.log_directory.mkdir(parents=True, exist_ok=True)

    @property
    def history_file(self) -> Path:
        return self.data_directory / "sync_history.json"

    @property
    def cache_file(self) -> Path:
        return self.data_directory / "cache.json"

    def last_sync_path(self, serial: str) -> str | None:
        return self.sync.last_sync_paths.get(serial)

    def update_last_sync_path(self, serial: str, path: str | Path) -> None:
        self.sync.last_sync_paths[serial] = str(path)


def default_config_path() -> Path:
    """Location of the user configuration file."""
    return _default_data_directory() / "config.json"


def get_default_config() -> AdbSyncConfig:
    """Get the default configuration."""
    return AdbSyncConfig()


def load_config(config_path: Path | None = None) -> AdbSyncConfig:
    """Load or create configuration."""
    config = AdbSyncConfig.load(config_path)
    config.ensure_directories()
    return config
