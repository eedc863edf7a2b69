"""Shared fakes: an in-memory MySQL session and a string sink."""

import re
from contextlib import asynccontextmanager

import pytest

from db_backup.config.models import BackupSettings
from db_backup.errors import BackupConnectionError, QueryError

_IDENT = re.compile(r"`((?:[^`]|``)*)`")


def _unquote(sql: str) -> str:
    match = _IDENT.search(sql)
    assert match, f"no quoted identifier in {sql!r}"
    return match.group(1).replace("``", "`")


class FakeSession:
    """Answers the handful of statements the exporters issue.

    Args:
        tables: table name -> list of rows, each row a list of
            ``(column, value)`` pairs.
        views: names returned with TABLE_TYPE 'VIEW'.
        fail_on: substring; any statement containing it raises QueryError.
        unreachable: ``verify()`` raises BackupConnectionError.
    """

    def __init__(self, tables=None, views=(), fail_on=None, unreachable=False):
        self.tables = {name: [tuple(r) for r in rows] for name, rows in (tables or {}).items()}
        self.views = list(views)
        self.fail_on = fail_on
        self.unreachable = unreachable
        self.queries: list[str] = []
        self.closed = False

    async def verify(self):
        if self.unreachable:
            raise BackupConnectionError("Cannot connect to database: Can't connect to MySQL server on 'db1'")

    async def query(self, sql, params=None):
        self.queries.append(sql)
        if self.fail_on and self.fail_on in sql:
            raise QueryError(f"Query failed: {self.fail_on}", sql=sql)

        if sql.startswith("SELECT TABLE_NAME"):
            entries = [(n, "BASE TABLE") for n in self.tables] + [(v, "VIEW") for v in self.views]
            # Server order deliberately unsorted
            return [
                (("TABLE_NAME", name), ("TABLE_TYPE", kind))
                for name, kind in reversed(entries)
            ]
        if sql.startswith("SHOW CREATE TABLE"):
            name = _unquote(sql)
            if name not in self.tables:
                raise QueryError(f"Table '{name}' doesn't exist", sql=sql)
            quoted = "`" + name.replace("`", "``") + "`"
            create = f"CREATE TABLE {quoted} (\n  `id` int NOT NULL\n) ENGINE=InnoDB"
            return [(("Table", name), ("Create Table", create))]
        if sql.startswith("SELECT COUNT(*)"):
            return [(("cnt", len(self.tables[_unquote(sql)])),)]
        if sql.startswith("SELECT * FROM"):
            name = _unquote(sql)
            limit, offset = map(int, re.search(r"LIMIT (\d+) OFFSET (\d+)$", sql).groups())
            return self.tables[name][offset:offset + limit]
        raise AssertionError(f"unexpected statement {sql!r}")

    async def close(self):
        self.closed = True


class MemorySink:
    """Collects writes in memory."""

    def __init__(self):
        self.chunks: list[str] = []

    async def write(self, chunk):
        self.chunks.append(chunk)

    @property
    def text(self) -> str:
        return "".join(self.chunks)


def make_rows(count, start=1):
    return [[("id", i), ("name", f"item-{i}")] for i in range(start, start + count)]


@pytest.fixture
def fake_session():
    return FakeSession


@pytest.fixture
def memory_sink():
    return MemorySink()


@pytest.fixture
def rows():
    return make_rows


@pytest.fixture
def session_factory_for():
    """Build a session factory that always yields ``session``.

    The returned factory records every request it was called with.
    """

    def _build(session):
        calls = []

        @asynccontextmanager
        async def factory(request, settings):
            calls.append(request)
            try:
                yield session
            finally:
                await session.close()

        factory.calls = calls
        return factory

    return _build


@pytest.fixture
def settings(tmp_path):
    return BackupSettings(public_dir=tmp_path / "public", batch_size=1000)
