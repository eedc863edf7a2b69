"""Pydantic models for engine settings and connection profiles."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ============================================================================
# Engine Settings
# ============================================================================


class BackupSettings(BaseSettings):
    """Runtime settings, overridable with ``DB_BACKUP_*`` environment variables.

    Dump files are written to ``public_dir / backup_subdir``; paths handed
    to observers are relative to ``public_dir`` so a static file server
    rooted there can serve them directly.
    """

    model_config = SettingsConfigDict(env_prefix="DB_BACKUP_", case_sensitive=False)

    public_dir: Path = Path("public")
    backup_subdir: str = "backup/database"

    # Connection pool
    pool_size: int = Field(default=4, ge=1)
    connect_timeout: int = Field(default=10, ge=1)  # seconds

    # Data export
    batch_size: int = Field(default=1000, ge=1)

    # Progress delivery
    channel_queue_size: int = Field(default=256, ge=1)

    @property
    def backup_dir(self) -> Path:
        """Directory the dump files are created in."""
        return self.public_dir / self.backup_subdir


# ============================================================================
# Connection Profiles
# ============================================================================


class ConnectionProfile(BaseModel):
    """Named connection profile from the TOML config file."""

    host: str
    user: str
    database: str
    password: str = Field(default="", repr=False)
    port: int = 3306
    description: str = ""


class BackupConfig(BaseModel):
    """Complete configuration loaded from TOML."""

    settings: BackupSettings = Field(default_factory=BackupSettings)
    profiles: dict[str, ConnectionProfile] = Field(default_factory=dict)
