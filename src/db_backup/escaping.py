"""Identifier and literal quoting for generated MySQL text.

Rows travel through the engine as ordered ``(column, value)`` pairs.  Each
value is classified into a ``ValueKind`` so rendering can dispatch on a
closed set of cases.  Literal escaping delegates to PyMySQL's converters,
the same rules the driver applies when it interpolates parameters.

Usage:
    from db_backup.escaping import quote_identifier, quote_literal

    quote_identifier("order`items")   # '`order``items`'
    quote_literal("O'Reilly")         # "'O\\'Reilly'"
    quote_literal(None)               # 'NULL'
"""

import datetime
import math
from decimal import Decimal
from enum import Enum
from typing import Any

from pymysql.converters import escape_bytes_prefixed, escape_item, escape_string

# One result row: column names in select order, paired with driver values
Row = tuple[tuple[str, Any], ...]

IDENTIFIER_QUOTE = "`"
NULL_LITERAL = "NULL"
CHARSET = "utf8mb4"


class ValueKind(str, Enum):
    """Closed set of value shapes the dump knows how to render."""

    NULL = "null"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    FLOAT = "float"
    DECIMAL = "decimal"
    TEXT = "text"
    BINARY = "binary"
    TEMPORAL = "temporal"


def quote_identifier(name: str) -> str:
    """Wrap a schema-derived name in backticks, doubling embedded backticks.

    No validation is done; callers pass names read from the catalog, never
    raw user input.
    """
    doubled = str(name).replace(IDENTIFIER_QUOTE, IDENTIFIER_QUOTE * 2)
    return f"{IDENTIFIER_QUOTE}{doubled}{IDENTIFIER_QUOTE}"


def classify_value(value: Any) -> ValueKind:
    """Map a driver value onto a ``ValueKind``.

    Unknown objects fall back to ``TEXT`` and are rendered via ``str()``.
    """
    if value is None:
        return ValueKind.NULL
    # bool is a subclass of int
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, int):
        return ValueKind.INTEGER
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, Decimal):
        return ValueKind.DECIMAL
    if isinstance(value, (bytes, bytearray, memoryview)):
        return ValueKind.BINARY
    if isinstance(
        value,
        (datetime.datetime, datetime.date, datetime.time, datetime.timedelta),
    ):
        return ValueKind.TEMPORAL
    return ValueKind.TEXT


def _text_of(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (set, frozenset)):
        # MySQL SET columns
        return ",".join(sorted(str(v) for v in value))
    return str(value)


def quote_literal(value: Any) -> str:
    """Render a scalar as a MySQL literal that round-trips on import.

    Args:
        value: Any value returned by the driver.

    Returns:
        SQL literal text.  ``None`` renders as ``NULL`` (never ``''``).
    """
    kind = classify_value(value)

    if kind is ValueKind.NULL:
        return NULL_LITERAL
    if kind is ValueKind.BOOLEAN:
        return "1" if value else "0"
    if kind is ValueKind.INTEGER:
        return str(int(value))
    if kind is ValueKind.FLOAT:
        # MySQL has no NaN or infinity
        if not math.isfinite(value):
            return NULL_LITERAL
        return escape_item(value, CHARSET)
    if kind is ValueKind.DECIMAL:
        if not value.is_finite():
            return NULL_LITERAL
        return str(value)
    if kind is ValueKind.BINARY:
        return escape_bytes_prefixed(bytes(value))
    if kind is ValueKind.TEMPORAL:
        return escape_item(value, CHARSET)
    return "'" + escape_string(_text_of(value)) + "'"


def row_columns(row: Row) -> list[str]:
    """Column names of a row, in select order."""
    return [name for name, _ in row]


def row_values(row: Row) -> list[Any]:
    """Values of a row, in select order."""
    return [value for _, value in row]


def values_tuple(row: Row) -> str:
    """Render one row as a parenthesized, comma-separated literal list."""
    return "(" + ", ".join(quote_literal(v) for v in row_values(row)) + ")"
