"""Data models for backup requests, progress events and artifacts.

Usage:
    from db_backup.models import BackupRequest, ProgressEvent, Stage

    request = BackupRequest.from_payload({
        "host": "db1",
        "user": "root",
        "password": "",
        "database": "shop",
        "clientId": "abc",
    })
    event = ProgressEvent(stage=Stage.START, percent=2, message="Starting backup")
"""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from db_backup.errors import InvalidRequestError

REQUIRED_FIELDS = ("host", "user", "database", "clientId")


class Stage(str, Enum):
    """Run stage carried by every progress event."""

    START = "start"
    CONNECT = "connect"
    SCHEMA = "schema"
    DATA = "data"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.DONE, Stage.ERROR)


class BackupRequest(BaseModel):
    """Credentials plus the client id used for progress routing.

    ``client_id`` is opaque and never used for authentication.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    host: str
    user: str
    password: str = Field(default="", repr=False)
    database: str
    client_id: str = Field(alias="clientId")
    port: int = 3306

    @field_validator("host", "user", "database", "client_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "BackupRequest":
        """Build a request from a raw mapping, rejecting missing fields.

        Accepts both ``clientId`` and ``client_id`` keys.

        Raises:
            InvalidRequestError: If host, user, database or clientId is
                missing or blank.
        """
        data = dict(payload or {})
        if "clientId" not in data and "client_id" in data:
            data["clientId"] = data.pop("client_id")

        missing = [
            name for name in REQUIRED_FIELDS
            if not str(data.get(name) or "").strip()
        ]
        if missing:
            raise InvalidRequestError(
                f"Fields {', '.join(REQUIRED_FIELDS)} are required "
                f"(missing: {', '.join(missing)})",
                missing=missing,
            )

        if data.get("password") is None:
            data["password"] = ""
        if not data.get("port"):
            data.pop("port", None)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid backup request: {e}") from e


class TableDescriptor(BaseModel):
    """One base table of the source database."""

    model_config = ConfigDict(frozen=True)

    name: str


class ArtifactFiles(BaseModel):
    """Relative paths of both dump files, as delivered to observers."""

    schema_path: str = Field(serialization_alias="schema")
    data_path: str = Field(serialization_alias="data")


class ProgressEvent(BaseModel):
    """A discrete status update for one run."""

    model_config = ConfigDict(frozen=True)

    stage: Stage
    percent: int = Field(ge=0, le=100)
    message: str
    files: ArtifactFiles | None = None  # only on done

    def to_message(self) -> dict[str, Any]:
        """Wire shape sent to observers."""
        message: dict[str, Any] = {
            "type": "progress",
            "stage": self.stage.value,
            "percent": self.percent,
            "message": self.message,
        }
        if self.files is not None:
            message["files"] = self.files.model_dump(by_alias=True)
        return message


class BackupArtifact(BaseModel):
    """The schema/data file pair produced by one run."""

    database: str
    timestamp: str                  # YYYYMMDD_HHMMSS
    schema_file: Path               # absolute path on disk
    data_file: Path
    schema_relpath: str             # POSIX path relative to the public root
    data_relpath: str

    def files(self) -> ArtifactFiles:
        return ArtifactFiles(
            schema_path=self.schema_relpath,
            data_path=self.data_relpath,
        )


class ArtifactInfo(BaseModel):
    """A dump file found on storage."""

    database: str
    kind: Literal["schema", "data"]
    timestamp: str
    created_at: datetime
    filename: str
    url: str
