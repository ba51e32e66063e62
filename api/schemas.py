from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.timeutil import as_utc


class _CamelModel(BaseModel):
    # Wire and on-disk field names are camelCase.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Thresholds(_CamelModel):
    temperature: float = 80
    vibration: float = 10
    pressure: float = 200


class Machine(_CamelModel):
    id: str
    name: str
    code: str = ""
    location: str = ""
    next_maintenance_date: str
    responsible_email: str = ""
    thresholds: Thresholds = Field(default_factory=Thresholds)
    last_maintenance_reminder_sent: Optional[datetime] = None
    last_abnormal_alert_sent: Optional[datetime] = None
    created_at: datetime

    @field_validator("last_maintenance_reminder_sent", "last_abnormal_alert_sent", "created_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class MachineCreate(_CamelModel):
    """Body of POST /machines. Required fields are checked by the route so a
    missing one answers 400 with a message instead of a schema error."""

    name: Optional[str] = None
    code: Optional[str] = None
    location: Optional[str] = None
    next_maintenance_date: Optional[str] = None
    responsible_email: Optional[str] = None
    thresholds: Optional[Thresholds] = None


class MachineUpdate(_CamelModel):
    name: Optional[str] = None
    code: Optional[str] = None
    location: Optional[str] = None
    next_maintenance_date: Optional[str] = None
    responsible_email: Optional[str] = None
    thresholds: Optional[Thresholds] = None
    last_maintenance_reminder_sent: Optional[datetime] = None
    last_abnormal_alert_sent: Optional[datetime] = None


class VitalCreate(_CamelModel):
    temperature: Optional[float] = None
    vibration: Optional[float] = None
    pressure: Optional[float] = None
    timestamp: Optional[datetime] = None

    @field_validator("temperature", "vibration", "pressure", mode="before")
    @classmethod
    def _numbers_only(cls, value: Any) -> Any:
        # Sensors post arbitrary JSON; anything that is not a JSON number is dropped.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return value

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class Vital(_CamelModel):
    id: str
    machine_id: str
    temperature: Optional[float] = None
    vibration: Optional[float] = None
    pressure: Optional[float] = None
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class VitalIngestResult(BaseModel):
    vital: Vital
    abnormal: bool


class Health(_CamelModel):
    status: str = "ok"
    machine_count: int
