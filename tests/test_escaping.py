"""Tests for identifier and literal quoting.

Verifies backtick quoting of identifiers, value classification, and that
string literals survive MySQL's backslash unescaping unchanged.
"""

import datetime
import re
from decimal import Decimal

import pytest

from db_backup.escaping import (
    ValueKind,
    classify_value,
    quote_identifier,
    quote_literal,
    row_columns,
    row_values,
    values_tuple,
)

# MySQL string-literal escapes (server side, NO_BACKSLASH_ESCAPES off)
_MYSQL_ESCAPES = {
    "0": "\0",
    "'": "'",
    '"': '"',
    "b": "\b",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "Z": "\x1a",
    "\\": "\\",
}


def _parse_string_literal(literal: str) -> str:
    """Decode a single-quoted MySQL literal the way the server would."""
    assert literal.startswith("'") and literal.endswith("'"), literal
    body = literal[1:-1]
    # Every quote inside the body must be escaped
    assert not re.search(r"(?<!\\)'", body.replace("\\\\", "")), literal
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\":
            nxt = body[i + 1]
            out.append(_MYSQL_ESCAPES.get(nxt, nxt))
            i += 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


class TestQuoteIdentifier:
    """Backtick quoting of schema names."""

    def test_plain_name(self):
        assert quote_identifier("orders") == "`orders`"

    def test_embedded_backtick_is_doubled(self):
        assert quote_identifier("order`items") == "`order``items`"

    def test_only_backticks(self):
        assert quote_identifier("``") == "``````"

    def test_other_characters_untouched(self):
        assert quote_identifier("weird name; DROP") == "`weird name; DROP`"


class TestClassifyValue:
    """Every driver value maps to exactly one kind."""

    @pytest.mark.parametrize(
        "value, kind",
        [
            (None, ValueKind.NULL),
            (True, ValueKind.BOOLEAN),
            (7, ValueKind.INTEGER),
            (1.5, ValueKind.FLOAT),
            (Decimal("1.50"), ValueKind.DECIMAL),
            ("text", ValueKind.TEXT),
            (b"\x00\x01", ValueKind.BINARY),
            (bytearray(b"ab"), ValueKind.BINARY),
            (datetime.date(2024, 1, 2), ValueKind.TEMPORAL),
            (datetime.datetime(2024, 1, 2, 3, 4, 5), ValueKind.TEMPORAL),
            (datetime.timedelta(hours=1), ValueKind.TEMPORAL),
            (object(), ValueKind.TEXT),
        ],
    )
    def test_kinds(self, value, kind):
        assert classify_value(value) is kind


class TestQuoteLiteral:
    """Literal rendering."""

    def test_null_is_sql_null(self):
        """None renders as NULL, never as an empty or quoted string."""
        assert quote_literal(None) == "NULL"

    def test_booleans(self):
        assert quote_literal(True) == "1"
        assert quote_literal(False) == "0"

    def test_integer(self):
        assert quote_literal(-42) == "-42"

    def test_decimal_keeps_scale(self):
        assert quote_literal(Decimal("12.50")) == "12.50"

    def test_float_is_unquoted_and_exact(self):
        literal = quote_literal(0.1)
        assert "'" not in literal
        assert float(literal) == 0.1

    def test_non_finite_float_is_null(self):
        assert quote_literal(float("nan")) == "NULL"
        assert quote_literal(float("inf")) == "NULL"

    def test_simple_string(self):
        assert quote_literal("hello") == "'hello'"

    def test_quote_is_escaped(self):
        assert quote_literal("O'Reilly") == "'O\\'Reilly'"

    def test_backslash_is_escaped(self):
        assert quote_literal("C:\\temp") == "'C:\\\\temp'"

    def test_control_characters_are_escaped(self):
        literal = quote_literal("a\nb\rc\x00d\x1a")
        assert "\n" not in literal
        assert "\r" not in literal
        assert "\x00" not in literal

    @pytest.mark.parametrize(
        "value",
        [
            "it's",
            'say "hi"',
            "back\\slash\\",
            "\\'",
            "line1\nline2\r\n",
            "nul\x00byte",
            "ctrl-z\x1a",
            "unicode: żółć 日本 🎉",
            "",
        ],
    )
    def test_string_parses_back_to_original(self, value):
        assert _parse_string_literal(quote_literal(value)) == value

    def test_binary_uses_binary_prefix(self):
        literal = quote_literal(b"ab'\x00")
        assert literal.startswith("_binary'")
        assert literal.endswith("'")
        assert "\\'" in literal
        assert "\\0" in literal

    def test_datetime(self):
        value = datetime.datetime(2024, 1, 2, 3, 4, 5)
        assert quote_literal(value) == "'2024-01-02 03:04:05'"

    def test_datetime_with_microseconds(self):
        value = datetime.datetime(2024, 1, 2, 3, 4, 5, 123)
        assert quote_literal(value) == "'2024-01-02 03:04:05.000123'"

    def test_date(self):
        assert quote_literal(datetime.date(2024, 1, 2)) == "'2024-01-02'"

    def test_timedelta(self):
        value = datetime.timedelta(hours=1, minutes=2, seconds=3)
        assert quote_literal(value) == "'01:02:03'"

    def test_set_column(self):
        assert quote_literal({"b", "a"}) == "'a,b'"

    def test_unknown_object_uses_str(self):
        class Thing:
            def __str__(self):
                return "it's a thing"

        assert quote_literal(Thing()) == "'it\\'s a thing'"


class TestRowHelpers:
    """Rows are ordered (column, value) pairs."""

    def test_columns_and_values_keep_order(self):
        row = (("b", 1), ("a", None))
        assert row_columns(row) == ["b", "a"]
        assert row_values(row) == [1, None]

    def test_values_tuple(self):
        row = (("id", 1), ("name", "x'y"), ("deleted_at", None))
        assert values_tuple(row) == "(1, 'x\\'y', NULL)"
