"""Backup engine: schema/data exporters, dump sinks, artifacts and runs.

Usage:
    from db_backup.backup import BackupRunner, run_backup, ArtifactStore
    from db_backup.backup import export_schema, export_data
"""

from db_backup.backup.artifacts import ArtifactStore, artifact_filename, format_timestamp
from db_backup.backup.data_export import export_data, export_table_data
from db_backup.backup.orchestrator import BackupRun, BackupRunner, RunState, run_backup
from db_backup.backup.schema_export import export_schema, fetch_create_statement
from db_backup.backup.sink import SqlSink

__all__ = [
    "ArtifactStore",
    "artifact_filename",
    "format_timestamp",
    "export_data",
    "export_table_data",
    "export_schema",
    "fetch_create_statement",
    "SqlSink",
    "BackupRun",
    "BackupRunner",
    "RunState",
    "run_backup",
]
