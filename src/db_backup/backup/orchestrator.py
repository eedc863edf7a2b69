"""Backup orchestration: one run from request to terminal event.

A run moves through ``START -> CONNECTING -> EXPORTING_SCHEMA ->
EXPORTING_DATA -> DONE``; any failure moves it to ``ERROR``.  Exactly one
terminal progress event (``done`` or ``error``) is emitted per run, and the
connection pool is disposed before it is sent.

``BackupRunner`` is the trigger: it validates a request synchronously and
schedules the run as a background task, so the caller can answer
immediately while progress flows through the registry.

Usage:
    from db_backup.backup.orchestrator import BackupRunner
    from db_backup.progress import ProgressRegistry

    registry = ProgressRegistry()
    runner = BackupRunner(registry)

    channel = registry.subscribe("abc")
    runner.start({"host": "db1", "user": "root", "password": "",
                  "database": "shop", "clientId": "abc"})
    async for event in channel:
        print(event.to_message())
        if event.stage.is_terminal:
            break
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from db_backup.backup.artifacts import ArtifactStore
from db_backup.backup.data_export import export_data
from db_backup.backup.schema_export import export_schema
from db_backup.backup.sink import SqlSink
from db_backup.catalog import list_base_tables
from db_backup.config.loader import get_settings
from db_backup.config.models import BackupSettings
from db_backup.models import BackupArtifact, BackupRequest, Stage
from db_backup.progress import (
    CONNECT_PERCENT,
    CONNECTED_PERCENT,
    DATA_START_PERCENT,
    DONE_PERCENT,
    START_PERCENT,
    ProgressRegistry,
    ProgressReporter,
)
from db_backup.session import Session, open_session

logger = logging.getLogger(__name__)

SessionFactory = Callable[
    [BackupRequest, BackupSettings], AbstractAsyncContextManager[Session]
]
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RunState(str, Enum):
    START = "start"
    CONNECTING = "connecting"
    EXPORTING_SCHEMA = "exporting_schema"
    EXPORTING_DATA = "exporting_data"
    DONE = "done"
    ERROR = "error"


class BackupRun:
    """A single backup run.  Call ``execute()`` once.

    Args:
        request: Validated request.
        registry: Where progress events are delivered.
        settings: Pool, batch and directory settings.
        session_factory: Scoped session constructor (``open_session`` in
            production, a fake in tests).
        store: Directory the dump files are created in.
        clock: Source of the artifact timestamp.
    """

    def __init__(
        self,
        request: BackupRequest,
        registry: ProgressRegistry,
        settings: BackupSettings,
        session_factory: SessionFactory = open_session,
        store: ArtifactStore | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.request = request
        self.settings = settings
        self.reporter = ProgressReporter(registry, request.client_id)
        self._session_factory = session_factory
        self._store = store or ArtifactStore.from_settings(settings)
        self._clock = clock
        self.state = RunState.START
        self.artifact: BackupArtifact | None = None
        self.rows_written: dict[str, int] = {}

    def _transition(self, state: RunState) -> None:
        logger.debug(
            "Backup %s/%s: %s -> %s",
            self.request.database, self.request.client_id,
            self.state.value, state.value,
        )
        self.state = state

    async def execute(self) -> BackupArtifact | None:
        """Run the backup to completion.

        Failures are reported as an ``error`` event, never raised.

        Returns:
            The artifact pair on success, ``None`` on failure.
        """
        request = self.request
        reporter = self.reporter
        logger.info(
            "Starting backup of %s on %s:%s for client %s",
            request.database, request.host, request.port, request.client_id,
        )
        reporter.emit(Stage.START, START_PERCENT, "Starting backup...")

        try:
            await self._run()
        except asyncio.CancelledError:
            self._transition(RunState.ERROR)
            reporter.error("Error: backup cancelled")
            raise
        except Exception as e:
            logger.exception("Backup of %s failed", request.database)
            self._transition(RunState.ERROR)
            reporter.error(f"Error: {e}")
            return None

        self._transition(RunState.DONE)
        artifact = self.artifact
        logger.info(
            "Backup of %s finished: %s, %s",
            request.database, artifact.schema_relpath, artifact.data_relpath,
        )
        reporter.emit(
            Stage.DONE, DONE_PERCENT, "Backup complete.", files=artifact.files()
        )
        return artifact

    async def _run(self) -> None:
        request = self.request
        reporter = self.reporter

        self._transition(RunState.CONNECTING)
        async with self._session_factory(request, self.settings) as session:
            reporter.emit(
                Stage.CONNECT, CONNECT_PERCENT, "Checking database connection..."
            )
            await session.verify()
            reporter.emit(
                Stage.CONNECT,
                CONNECTED_PERCENT,
                "Connection OK. Backing up structure...",
            )

            self._transition(RunState.EXPORTING_SCHEMA)
            tables = await list_base_tables(session, request.database)
            logger.info("Found %d tables in %s", len(tables), request.database)

            generated_at = self._clock()
            artifact = self._store.create_pair(request.database, generated_at)

            async with SqlSink(
                artifact.schema_file, request.database, generated_at
            ) as schema_sink:
                await export_schema(session, tables, schema_sink, reporter)
                await schema_sink.finish()

            self._transition(RunState.EXPORTING_DATA)
            reporter.emit(Stage.DATA, DATA_START_PERCENT, "Backing up data...")

            async with SqlSink(
                artifact.data_file, request.database, generated_at
            ) as data_sink:
                self.rows_written = await export_data(
                    session,
                    tables,
                    data_sink,
                    reporter,
                    batch_size=self.settings.batch_size,
                )
                await data_sink.finish()

            self.artifact = artifact


async def run_backup(
    request: BackupRequest,
    registry: ProgressRegistry,
    settings: BackupSettings | None = None,
    session_factory: SessionFactory = open_session,
    store: ArtifactStore | None = None,
    clock: Clock = utc_now,
) -> BackupArtifact | None:
    """Run one backup and return its artifact, or ``None`` if it failed."""
    run = BackupRun(
        request,
        registry,
        settings or get_settings(),
        session_factory=session_factory,
        store=store,
        clock=clock,
    )
    return await run.execute()


class BackupRunner:
    """Validates requests and dispatches runs as background tasks.

    Keeps a reference to every live task so none is garbage-collected
    mid-run.
    """

    def __init__(
        self,
        registry: ProgressRegistry,
        settings: BackupSettings | None = None,
        session_factory: SessionFactory = open_session,
        store: ArtifactStore | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.registry = registry
        self.settings = settings or get_settings()
        self._session_factory = session_factory
        self._store = store
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()

    @property
    def active(self) -> int:
        """Number of runs still in flight."""
        return len(self._tasks)

    def start(self, request: BackupRequest | Mapping[str, Any]) -> asyncio.Task:
        """Validate ``request`` and schedule its run.

        Must be called from a running event loop.

        Raises:
            InvalidRequestError: If required fields are missing.  No task
                is created and no event is emitted.

        Returns:
            The task handle.  Callers may ignore it.
        """
        if isinstance(request, BackupRequest):
            # Re-check instances built without validation (model_construct)
            request = request.model_dump(by_alias=True)
        request = BackupRequest.from_payload(request)

        task = asyncio.create_task(
            run_backup(
                request,
                self.registry,
                self.settings,
                session_factory=self._session_factory,
                store=self._store,
                clock=self._clock,
            ),
            name=f"backup:{request.database}:{request.client_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def wait_all(self) -> None:
        """Wait for every in-flight run to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
