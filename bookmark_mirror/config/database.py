from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

# field -> (lower bound, upper bound), both inclusive
_NUMERIC_BOUNDS: dict[str, tuple[float, float]] = {
    "operation_timeout": (0.1, 3600.0),
    "max_retries": (0, 20),
    "busy_timeout_ms": (0, 600_000),
}


class DatabaseConfig(BaseModel):
    """Location of the mirror's SQLite file and how patiently to wait on it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str = Field(
        default="/data/bookmarks.db",
        validation_alias="DB_PATH",
        description="SQLite file holding bookmarks and tag counts",
    )
    operation_timeout: float = Field(
        default=30.0,
        validation_alias="DB_OPERATION_TIMEOUT",
        description="Seconds one store call may take before it fails",
    )
    max_retries: int = Field(
        default=3,
        validation_alias="DB_MAX_RETRIES",
        description="Retries for 'database is locked' errors",
    )
    busy_timeout_ms: int = Field(
        default=5000,
        validation_alias="DB_BUSY_TIMEOUT_MS",
        description="SQLite busy_timeout pragma",
    )

    @field_validator("path", mode="before")
    @classmethod
    def _validate_path(cls, value: Any) -> str:
        raw = str(value or "").strip()
        if not raw:
            msg = "Database path is required"
            raise ValueError(msg)
        # Every worker thread opens its own connection; an in-memory database would not be shared.
        if raw == ":memory:" or raw.startswith("file::memory:"):
            msg = "In-memory databases are not supported; point DB_PATH at a file"
            raise ValueError(msg)
        return str(Path(raw).expanduser())

    @field_validator("operation_timeout", "max_retries", "busy_timeout_ms", mode="before")
    @classmethod
    def _validate_bounded(cls, value: Any, info: ValidationInfo) -> float | int:
        default = cls.model_fields[info.field_name].default
        if value in (None, ""):
            return default
        label = info.field_name.replace("_", " ")
        try:
            parsed = float(str(value))
        except ValueError as exc:
            msg = f"Database {label} must be a number"
            raise ValueError(msg) from exc
        low, high = _NUMERIC_BOUNDS[info.field_name]
        if not low <= parsed <= high:
            msg = f"Database {label} must be between {low:g} and {high:g}"
            raise ValueError(msg)
        return parsed if isinstance(default, float) else int(parsed)
