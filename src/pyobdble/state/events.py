"""Normalized decode events.

The decoder converts every accepted adapter reply into a
:class:`FieldUpdate`.  Only the state/store layer is allowed to apply them.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyobdble.models.snapshot import TelemetrySnapshot


class FieldUpdate(BaseModel):
    """A single decoded value destined for one snapshot field."""

    model_config = ConfigDict(frozen=True)

    pid: str = Field(..., description="Two-hex-digit Mode 01 PID")
    field: str = Field(..., description="TelemetrySnapshot field name")
    value: int | float
    raw: str = Field(default="", description="Cleaned response the value was decoded from")
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("pid")
    @classmethod
    def _normalize_pid(cls, value: str) -> str:
        pid = value.strip().upper()
        if len(pid) != 2:
            raise ValueError(f"pid must be two hex digits, got {value!r}")
        return pid

    @field_validator("field")
    @classmethod
    def _known_field(cls, value: str) -> str:
        if value not in TelemetrySnapshot.model_fields or value in {"is_connected", "device_name"}:
            raise ValueError(f"not a telemetry field: {value!r}")
        return value

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value
