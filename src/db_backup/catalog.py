"""Table enumeration via information_schema.

Only base tables are listed: views and other derived objects have no rows
of their own and their definitions are not part of the dump.
"""

import logging

from db_backup.escaping import row_values
from db_backup.models import TableDescriptor
from db_backup.session import Session

logger = logging.getLogger(__name__)

BASE_TABLES_SQL = (
    "SELECT TABLE_NAME, TABLE_TYPE FROM information_schema.TABLES "
    "WHERE TABLE_SCHEMA = :schema ORDER BY TABLE_NAME"
)


async def list_base_tables(session: Session, database: str) -> list[TableDescriptor]:
    """List the base tables of ``database`` ordered by name.

    Args:
        session: Open session on the server holding ``database``.
        database: Schema name to enumerate.

    Returns:
        One ``TableDescriptor`` per base table.  Empty for an empty
        database.
    """
    rows = await session.query(BASE_TABLES_SQL, {"schema": database})

    tables = []
    for row in rows:
        name, table_type = row_values(row)[:2]
        if table_type == "BASE TABLE":
            tables.append(TableDescriptor(name=name))

    # The server collation decides ORDER BY; re-sort so output is stable
    # across servers
    tables.sort(key=lambda t: t.name)
    logger.debug("Found %d base tables in %s", len(tables), database)
    return tables
