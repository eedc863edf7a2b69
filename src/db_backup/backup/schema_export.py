"""Schema export: one DROP/CREATE pair per table.

The CREATE statement is the server's own ``SHOW CREATE TABLE`` output, so
column types, indexes, engine and charset options restore exactly.
"""

import logging
from collections.abc import Sequence

from db_backup.backup.sink import SqlSink
from db_backup.errors import QueryError
from db_backup.escaping import quote_identifier
from db_backup.models import Stage, TableDescriptor
from db_backup.progress import ProgressReporter, schema_percent
from db_backup.session import Session

logger = logging.getLogger(__name__)

CREATE_COLUMN = "Create Table"


async def fetch_create_statement(session: Session, table: str) -> str:
    """Return the canonical CREATE TABLE statement for ``table``.

    Raises:
        QueryError: If the server returns no statement.
    """
    sql = f"SHOW CREATE TABLE {quote_identifier(table)}"
    rows = await session.query(sql)
    if not rows:
        raise QueryError(f"No CREATE statement returned for table {table}", sql=sql)

    columns = dict(rows[0])
    if CREATE_COLUMN in columns:
        return columns[CREATE_COLUMN]
    # Second column holds the statement when the driver renames headers
    return rows[0][1][1]


async def export_schema(
    session: Session,
    tables: Sequence[TableDescriptor],
    sink: SqlSink,
    reporter: ProgressReporter | None = None,
) -> None:
    """Write the structure of every table to ``sink``, in order.

    Any failure aborts the whole export; what was already written stays in
    the sink.

    Args:
        session: Open session.
        tables: Tables in dump order.
        sink: Open schema sink.
        reporter: Receives one ``schema`` event per completed table.
    """
    total = len(tables)
    for done, table in enumerate(tables, start=1):
        create_sql = await fetch_create_statement(session, table.name)
        ident = quote_identifier(table.name)

        await sink.write(f"\n-- Table structure for {ident}\n")
        await sink.write(f"DROP TABLE IF EXISTS {ident};\n")
        await sink.write(create_sql.rstrip().rstrip(";") + ";\n")

        logger.debug("Exported structure of %s (%d/%d)", table.name, done, total)
        if reporter is not None:
            reporter.emit(
                Stage.SCHEMA,
                schema_percent(done, total),
                f"Structure: {done}/{total} ({table.name})",
            )
