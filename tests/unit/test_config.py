"""
Tests for adbsync.core.config module.
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from adbsync.core.config import (
    AdbSyncConfig,
    FilterRuleConfig,
    RetryConfig,
    SyncConfig,
    get_default_config,
)
from adbsync.core.models import ConflictPolicy


class TestAdbSyncConfig:
    """Tests for AdbSyncConfig."""

    def test_default_config(self) -> None:
        config = get_default_config()

        assert config.remote.scan_root == "/sdcard"
        assert config.retry.max_attempts == 3
        assert config.retry.initial_delay_seconds == 1.0
        assert config.retry.multiplier == 2.0
        assert config.retry.max_delay_seconds == 30.0
        assert config.sync.conflict_policy == ConflictPolicy.ASK_EACH_TIME
        assert config.sync.max_concurrent_transfers == 3
        assert config.sync.hash_authoritative is True
        assert config.history_limit == 100

    def test_save_and_load(self, temp_dir: Path) -> None:
        config_path = temp_dir / "config.json"

        config = AdbSyncConfig(data_directory=temp_dir / "data")
        config.sync.conflict_policy = ConflictPolicy.RENAME
        config.sync.max_concurrent_transfers = 5
        config.filters.rules.append(FilterRuleConfig(pattern="*.jpg"))
        config.save(config_path)

        assert config_path.exists()

        loaded = AdbSyncConfig.load(config_path)
        assert loaded.sync.conflict_policy == ConflictPolicy.RENAME
        assert loaded.sync.max_concurrent_transfers == 5
        assert loaded.filters.rules[0].pattern == "*.jpg"
        assert loaded.data_directory == (temp_dir / "data").resolve()

    def test_saved_file_is_json(self, temp_dir: Path) -> None:
        config_path = temp_dir / "nested" / "config.json"
        AdbSyncConfig(data_directory=temp_dir).save(config_path)

        with open(config_path) as f:
            data = json.load(f)

        assert data["sync"]["conflict_policy"] == "ask_each_time"
        assert "retry" in data

    def test_load_missing_file_returns_defaults(self, temp_dir: Path) -> None:
        config = AdbSyncConfig.load(temp_dir / "missing.json")
        assert config.remote.scan_root == "/sdcard"

    def test_ensure_directories(self, temp_dir: Path) -> None:
        config = AdbSyncConfig(data_directory=temp_dir / "data")
        config.logging.log_directory = temp_dir / "logs"
        config.ensure_directories()

        assert (temp_dir / "data").is_dir()
        assert (temp_dir / "logs").is_dir()

    def test_data_files(self, temp_dir: Path) -> None:
        config = AdbSyncConfig(data_directory=temp_dir)
        assert config.history_file.parent == temp_dir.resolve()
        assert config.cache_file.name == "cache.json"

    def test_last_sync_path(self, temp_dir: Path) -> None:
        config = AdbSyncConfig(data_directory=temp_dir)
        assert config.last_sync_path("SERIAL1") is None

        config.update_last_sync_path("SERIAL1", temp_dir / "backup")
        assert config.last_sync_path("SERIAL1") == str(temp_dir / "backup")


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=0)

    def test_rejects_shrinking_multiplier(self) -> None:
        with pytest.raises(ValidationError):
            RetryConfig(multiplier=0.5)


class TestSyncConfig:
    """Tests for SyncConfig."""

    def test_policy_from_string(self) -> None:
        config = SyncConfig.model_validate({"conflict_policy": "skip"})
        assert config.conflict_policy == ConflictPolicy.SKIP

    def test_concurrency_bounds(self) -> None:
        with pytest.raises(ValidationError):
            SyncConfig(max_concurrent_transfers=0)

    def test_target_path_expands_user(self) -> None:
        config = SyncConfig(default_target_path="~/phone")
        assert "~" not in str(config.default_target_path)
