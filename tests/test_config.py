"""Tests for settings and TOML config loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from db_backup.config import BackupSettings, get_settings, load_backup_config


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "db-backup.toml"
    path.write_text(
        """
[settings]
public_dir = "srv/public"
batch_size = 500

[profiles.local]
host = "127.0.0.1"
user = "root"
database = "shop"
description = "Local dev"

[profiles.staging]
host = "staging.internal"
port = 3307
user = "backup"
password = "s3cret"
database = "shop"
""",
        encoding="utf-8",
    )
    return path


class TestBackupSettings:
    def test_defaults(self, monkeypatch):
        for name in ("PUBLIC_DIR", "BACKUP_SUBDIR", "BATCH_SIZE", "POOL_SIZE"):
            monkeypatch.delenv(f"DB_BACKUP_{name}", raising=False)
        settings = BackupSettings()
        assert settings.public_dir == Path("public")
        assert settings.backup_dir == Path("public/backup/database")
        assert settings.batch_size == 1000
        assert settings.pool_size == 4
        assert settings.connect_timeout == 10
        assert settings.channel_queue_size == 256

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DB_BACKUP_BATCH_SIZE", "250")
        monkeypatch.setenv("DB_BACKUP_PUBLIC_DIR", "/srv/www")
        settings = BackupSettings()
        assert settings.batch_size == 250
        assert settings.backup_dir == Path("/srv/www/backup/database")

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValidationError):
            BackupSettings(batch_size=0)

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()


class TestLoadBackupConfig:
    def test_settings_and_profiles(self, config_file):
        config = load_backup_config(config_file)

        assert config.settings.public_dir == Path("srv/public")
        assert config.settings.batch_size == 500
        assert set(config.profiles) == {"local", "staging"}

        local = config.profiles["local"]
        assert local.port == 3306
        assert local.password == ""
        assert local.description == "Local dev"

        staging = config.profiles["staging"]
        assert staging.port == 3307
        assert "s3cret" not in repr(staging)

    def test_file_overrides_environment(self, config_file, monkeypatch):
        monkeypatch.setenv("DB_BACKUP_BATCH_SIZE", "250")
        assert load_backup_config(config_file).settings.batch_size == 500

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="not found"):
            load_backup_config(tmp_path / "missing.toml")

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "bad.toml"
        path.write_text("[settings\nbatch_size = ", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid TOML"):
            load_backup_config(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.toml"
        path.write_text("", encoding="utf-8")
        config = load_backup_config(path)
        assert config.profiles == {}
        assert config.settings.backup_subdir == "backup/database"
