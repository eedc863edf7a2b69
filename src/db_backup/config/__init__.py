"""Configuration management: settings, TOML loading, and config models.

Usage:
    >>> from db_backup.config import get_settings, load_backup_config, BackupSettings
"""

from db_backup.config.loader import get_settings, load_backup_config
from db_backup.config.models import BackupConfig, BackupSettings, ConnectionProfile

__all__ = [
    "get_settings",
    "load_backup_config",
    "BackupConfig",
    "BackupSettings",
    "ConnectionProfile",
]
