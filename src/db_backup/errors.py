"""Exception hierarchy for the backup engine.

Every error raised by ``db_backup`` derives from ``BackupError`` and also
from the closest builtin, so callers can catch either.

Usage:
    from db_backup.errors import BackupError, QueryError

    try:
        await session.query("SELECT 1")
    except QueryError as e:
        print(e.sql)
"""


class BackupError(Exception):
    """Base class for all backup engine errors."""

    pass


class InvalidRequestError(BackupError, ValueError):
    """Raised when a backup request is missing required fields.

    Raised synchronously by the trigger before any run is scheduled.
    """

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing: list[str] = list(missing or [])


class BackupConnectionError(BackupError, ConnectionError):
    """Raised when the pool cannot be created or the server is unreachable."""

    pass


class QueryError(BackupError):
    """Raised when a metadata or data query fails, including mid-stream."""

    def __init__(self, message: str, sql: str | None = None):
        super().__init__(message)
        self.sql = sql


class ArtifactWriteError(BackupError, OSError):
    """Raised when an output file cannot be created or written."""

    pass


class UnsafePathError(BackupError, ValueError):
    """Raised when an artifact name would escape the backup directory."""

    pass
