"""Configuration loading: cached settings and TOML profiles."""

import tomllib
from functools import lru_cache
from pathlib import Path

from db_backup.config.models import BackupConfig, BackupSettings, ConnectionProfile

DEFAULT_CONFIG_FILE = Path("db-backup.toml")


@lru_cache
def get_settings() -> BackupSettings:
    """Get cached settings instance (environment only)."""
    return BackupSettings()


def load_backup_config(config_path: Path | None = None) -> BackupConfig:
    """Load settings overrides and connection profiles from a TOML file.

    Expected layout::

        [settings]
        public_dir = "public"
        batch_size = 500

        [profiles.local]
        host = "127.0.0.1"
        user = "root"
        database = "shop"

    Args:
        config_path: Path to the TOML file (default: ./db-backup.toml)

    Returns:
        BackupConfig with settings and all profiles

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config format is invalid
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    if not config_path.exists():
        raise FileNotFoundError(
            f"Backup config not found: {config_path}\n"
            f"Create it with a [settings] table and [profiles.<name>] tables."
        )

    with open(config_path, "rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    # File values override DB_BACKUP_* variables
    settings = BackupSettings(**data.get("settings", {}))

    profiles = {}
    for name, profile_data in data.get("profiles", {}).items():
        profiles[name] = ConnectionProfile(**profile_data)

    return BackupConfig(settings=settings, profiles=profiles)
