"""Data export: batched INSERT statements per table.

Rows are read with LIMIT/OFFSET pagination, one batch in memory at a time,
and each non-empty batch becomes a single multi-row INSERT.  Every table is
wrapped in LOCK TABLES / DISABLE KEYS ... ENABLE KEYS / UNLOCK TABLES, even
when it has no rows.

Pagination holds no snapshot: rows written to the source table while it is
being dumped may be skipped or repeated.
"""

import logging
from collections.abc import Sequence

from db_backup.backup.sink import SqlSink
from db_backup.errors import QueryError
from db_backup.escaping import Row, quote_identifier, row_columns, row_values, values_tuple
from db_backup.models import Stage, TableDescriptor
from db_backup.progress import ProgressReporter, data_percent
from db_backup.session import Session

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


def table_preamble(ident: str) -> str:
    return f"LOCK TABLES {ident} WRITE;\nALTER TABLE {ident} DISABLE KEYS;\n"


def table_postamble(ident: str) -> str:
    return f"ALTER TABLE {ident} ENABLE KEYS;\nUNLOCK TABLES;\n"


def render_insert(ident: str, rows: Sequence[Row]) -> str:
    """One INSERT statement listing every row of the batch.

    Column names come from the first row; ``SELECT *`` gives every row of
    a batch the same shape.
    """
    columns = ", ".join(quote_identifier(c) for c in row_columns(rows[0]))
    values = ",\n".join(values_tuple(row) for row in rows)
    return f"INSERT INTO {ident} ({columns}) VALUES\n{values};\n"


async def count_rows(session: Session, table: str) -> int:
    """Row count used for progress accounting."""
    sql = f"SELECT COUNT(*) AS cnt FROM {quote_identifier(table)}"
    rows = await session.query(sql)
    if not rows:
        raise QueryError(f"Row count returned nothing for table {table}", sql=sql)
    return int(row_values(rows[0])[0])


async def export_table_data(
    session: Session,
    table: TableDescriptor,
    sink: SqlSink,
    tables_completed: int,
    total_tables: int,
    reporter: ProgressReporter | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> int:
    """Dump the rows of one table.

    Returns:
        Number of rows written.
    """
    ident = quote_identifier(table.name)
    await sink.write(f"\n-- Data for {ident}\n")
    await sink.write(table_preamble(ident))

    row_count = await count_rows(session, table.name)
    written = 0

    while written < row_count:
        rows = await session.query(
            f"SELECT * FROM {ident} LIMIT {int(batch_size)} OFFSET {written}"
        )
        if not rows:
            break

        await sink.write(render_insert(ident, rows))
        written += len(rows)

        logger.debug("%s: %d/%d rows", table.name, written, row_count)
        if reporter is not None:
            reporter.emit(
                Stage.DATA,
                data_percent(tables_completed, written, row_count, total_tables),
                f"Data: {table.name} {written}/{row_count}",
            )

        if len(rows) < batch_size:
            break

    await sink.write(table_postamble(ident))
    return written


async def export_data(
    session: Session,
    tables: Sequence[TableDescriptor],
    sink: SqlSink,
    reporter: ProgressReporter | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> dict[str, int]:
    """Dump the rows of every table to ``sink``, strictly one table at a time.

    Args:
        session: Open session.
        tables: Tables in dump order.
        sink: Open data sink.
        reporter: Receives one ``data`` event per batch.
        batch_size: Rows per SELECT and per INSERT statement.

    Returns:
        Rows written per table name.
    """
    written: dict[str, int] = {}
    total = len(tables)
    for completed, table in enumerate(tables):
        written[table.name] = await export_table_data(
            session,
            table,
            sink,
            tables_completed=completed,
            total_tables=total,
            reporter=reporter,
            batch_size=batch_size,
        )
    return written
