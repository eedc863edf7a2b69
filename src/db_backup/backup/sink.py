"""Append-only SQL output file with the dump envelope.

Each file opens with a fixed comment header and session directives and
ends with the foreign-key re-enable directive written by ``finish()``.  A
sink closed without ``finish()`` keeps whatever was written so far.  Files
are created exclusively; an existing file is an ``ArtifactWriteError``.
"""

from datetime import datetime
from pathlib import Path
from types import TracebackType

import aiofiles

from db_backup.errors import ArtifactWriteError

RULE = "-- --------------------------------------------------"
FOOTER = "\nSET FOREIGN_KEY_CHECKS=1;\n"


def render_header(database: str, generated_at: datetime) -> str:
    """Header block shared by schema and data files."""
    return "\n".join([
        RULE,
        f"-- Backup for database: {database}",
        f"-- Generated at: {generated_at.isoformat()}",
        "-- Engine: Python + SQLAlchemy/aiomysql",
        RULE,
        "SET NAMES utf8mb4;",
        "SET FOREIGN_KEY_CHECKS=0;",
        "",
    ]) + "\n"


class SqlSink:
    """Streamed writer for one dump file.

    Usage:
        async with SqlSink(path, "shop", now) as sink:
            await sink.write("DROP TABLE IF EXISTS `orders`;\\n")
            await sink.finish()
    """

    def __init__(self, path: Path, database: str, generated_at: datetime) -> None:
        self.path = Path(path)
        self.database = database
        self.generated_at = generated_at
        self._handle = None
        self.finished = False

    async def __aenter__(self) -> "SqlSink":
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            # Exclusive create: a run never overwrites another run's file
            self._handle = await aiofiles.open(self.path, "x", encoding="utf-8")
        except OSError as e:
            raise ArtifactWriteError(f"Cannot create {self.path}: {e}") from e
        try:
            await self.write(render_header(self.database, self.generated_at))
        except BaseException:
            await self.close()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def write(self, chunk: str) -> None:
        if self._handle is None:
            raise ArtifactWriteError(f"Sink for {self.path} is not open")
        try:
            await self._handle.write(chunk)
        except OSError as e:
            raise ArtifactWriteError(f"Cannot write {self.path}: {e}") from e

    async def finish(self) -> None:
        """Write the closing directive."""
        await self.write(FOOTER)
        self.finished = True

    async def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                await handle.close()
            except OSError as e:
                raise ArtifactWriteError(f"Cannot close {self.path}: {e}") from e
