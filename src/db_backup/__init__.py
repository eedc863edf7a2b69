"""db-backup: Async MySQL dump engine with live progress events.

Connects with caller-supplied credentials, enumerates base tables, and
streams structure and data into two re-importable SQL files while pushing
progress events to the observer registered under the request's client id.

Usage:
    from db_backup import BackupRunner, ProgressRegistry
    from db_backup import BackupRequest, ProgressEvent, Stage
    from db_backup import quote_identifier, quote_literal
"""

__version__ = "0.1.0"

# Models
from db_backup.models import (
    ArtifactFiles,
    ArtifactInfo,
    BackupArtifact,
    BackupRequest,
    ProgressEvent,
    Stage,
    TableDescriptor,
)

# Errors
from db_backup.errors import (
    ArtifactWriteError,
    BackupConnectionError,
    BackupError,
    InvalidRequestError,
    QueryError,
    UnsafePathError,
)

# Escaping
from db_backup.escaping import ValueKind, classify_value, quote_identifier, quote_literal

# Progress
from db_backup.progress import ProgressChannel, ProgressRegistry, ProgressReporter, QueueChannel

# Session
from db_backup.session import MySQLSession, Session, open_session

# Catalog
from db_backup.catalog import list_base_tables

# Config
from db_backup.config import BackupSettings, get_settings, load_backup_config

# Backup engine
from db_backup.backup import (
    ArtifactStore,
    BackupRun,
    BackupRunner,
    export_data,
    export_schema,
    run_backup,
)

__all__ = [
    # Models
    "ArtifactFiles",
    "ArtifactInfo",
    "BackupArtifact",
    "BackupRequest",
    "ProgressEvent",
    "Stage",
    "TableDescriptor",
    # Errors
    "ArtifactWriteError",
    "BackupConnectionError",
    "BackupError",
    "InvalidRequestError",
    "QueryError",
    "UnsafePathError",
    # Escaping
    "ValueKind",
    "classify_value",
    "quote_identifier",
    "quote_literal",
    # Progress
    "ProgressChannel",
    "ProgressRegistry",
    "ProgressReporter",
    "QueueChannel",
    # Session
    "MySQLSession",
    "Session",
    "open_session",
    # Catalog
    "list_base_tables",
    # Config
    "BackupSettings",
    "get_settings",
    "load_backup_config",
    # Backup engine
    "ArtifactStore",
    "BackupRun",
    "BackupRunner",
    "export_data",
    "export_schema",
    "run_backup",
]
