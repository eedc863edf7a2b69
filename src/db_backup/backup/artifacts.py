"""Dump file naming, listing and deletion.

Files are named ``{database}_{schema|data}_{YYYYMMDD_HHMMSS}.sql`` inside a
single backup directory.  Paths reported to observers are POSIX paths
relative to the public root the directory is served from.

Usage:
    from db_backup.backup.artifacts import ArtifactStore

    store = ArtifactStore(Path("public/backup/database"), public_root=Path("public"))
    artifact = store.create_pair("shop", datetime.now(timezone.utc))
    for info in store.list():
        print(info.filename, info.url)
    store.delete("shop_data_20251016_091234.sql")
"""

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from db_backup.config.models import BackupSettings
from db_backup.errors import UnsafePathError
from db_backup.models import ArtifactInfo, BackupArtifact

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
FILENAME_RE = re.compile(r"^(.+?)_(schema|data)_(\d{8}_\d{6})\.sql$", re.IGNORECASE)
_UNSAFE_NAME_CHARS = re.compile(r"[^\w$-]")

ArtifactKind = Literal["schema", "data"]


def format_timestamp(moment: datetime) -> str:
    """Fixed-width sortable stamp, e.g. ``20251016_091234``."""
    return moment.strftime(TIMESTAMP_FORMAT)


def artifact_filename(database: str, kind: ArtifactKind, timestamp: str) -> str:
    """File name for one dump.

    Characters that could form a path (separators, dots) are replaced in
    the database part so the file always lands in the backup directory.
    """
    safe_db = _UNSAFE_NAME_CHARS.sub("_", database)
    return f"{safe_db}_{kind}_{timestamp}.sql"


class ArtifactStore:
    """The directory dump files are created in.

    Args:
        root: Backup directory.  Created on demand.
        public_root: Directory relative paths are computed from.  Defaults
            to ``root`` itself.
    """

    def __init__(self, root: Path, public_root: Path | None = None) -> None:
        self.root = Path(root)
        self.public_root = Path(public_root) if public_root is not None else self.root

    @classmethod
    def from_settings(cls, settings: BackupSettings) -> "ArtifactStore":
        return cls(settings.backup_dir, public_root=settings.public_dir)

    def relative_path(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.public_root.resolve()).as_posix()
        except ValueError:
            return path.name

    def create_pair(self, database: str, moment: datetime) -> BackupArtifact:
        """Allocate the schema/data file pair for one run.

        Only paths are computed; the sinks create the files.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        timestamp = format_timestamp(moment)
        schema_file = self.root / artifact_filename(database, "schema", timestamp)
        data_file = self.root / artifact_filename(database, "data", timestamp)
        return BackupArtifact(
            database=database,
            timestamp=timestamp,
            schema_file=schema_file,
            data_file=data_file,
            schema_relpath=self.relative_path(schema_file),
            data_relpath=self.relative_path(data_file),
        )

    def list(self) -> list[ArtifactInfo]:
        """Dump files in the directory, newest first.

        Files whose names don't follow the dump pattern are ignored.
        """
        if not self.root.is_dir():
            return []

        items: list[ArtifactInfo] = []
        for path in self.root.iterdir():
            if not path.is_file():
                continue
            match = FILENAME_RE.match(path.name)
            if not match:
                continue
            database, kind, timestamp = match.groups()
            created_at = datetime.strptime(timestamp, TIMESTAMP_FORMAT).replace(
                tzinfo=timezone.utc
            )
            items.append(
                ArtifactInfo(
                    database=database,
                    kind=kind.lower(),
                    timestamp=timestamp,
                    created_at=created_at,
                    filename=path.name,
                    url="/" + self.relative_path(path),
                )
            )

        items.sort(key=lambda i: (i.timestamp, i.filename), reverse=True)
        return items

    def resolve(self, filename: str) -> Path:
        """Path of ``filename`` inside the backup directory.

        Raises:
            UnsafePathError: If the name contains ``..`` or a path
                separator, or resolves outside the directory.
        """
        if not filename or ".." in filename or "/" in filename or "\\" in filename:
            raise UnsafePathError(f"Invalid file name: {filename!r}")

        root = self.root.resolve()
        full = (root / filename).resolve()
        if full.parent != root:
            raise UnsafePathError(f"Path escapes backup directory: {filename!r}")
        return full

    def delete(self, filename: str) -> Path:
        """Delete one dump file.

        Raises:
            UnsafePathError: If ``filename`` is not a plain name inside the
                backup directory.
            FileNotFoundError: If the file does not exist.
        """
        full = self.resolve(filename)
        full.unlink()
        logger.info("Deleted backup file %s", full.name)
        return full
