"""
Schedule data contracts.

A provider's working hours come either as a structured schedule (recurring
weekly entries plus date-specific overrides) or as the legacy flat fields
``openingTime`` / ``closingTime`` / ``workDays``. Both accept camelCase keys so
records from the settings store validate directly.
"""

import datetime
import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel

DAY_NAMES = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

DayName = Literal["sun", "mon", "tue", "wed", "thu", "fri", "sat"]

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str) -> int:
    """Return minutes since midnight for an ``HH:MM`` string."""
    match = _HHMM.match(value.strip())
    if not match:
        raise ValueError(f"Time must use HH:MM format, got {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


class _ScheduleModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScheduleDay(_ScheduleModel):
    """Recurring weekly entry; a weekday may appear more than once (split shifts)."""
    day_of_week: DayName
    start_time: str
    end_time: str

    @field_validator("day_of_week", mode="before")
    @classmethod
    def normalize_day(cls, value: Any) -> Any:
        """Accept ``Mon`` or ``monday`` as well as ``mon``."""
        if isinstance(value, str):
            return value.strip().lower()[:3]
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        parse_hhmm(value)
        return value.strip()


class ScheduleOverride(_ScheduleModel):
    """Replaces the recurring pattern for one calendar date."""
    date: datetime.date
    is_unavailable: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        parse_hhmm(value)
        return value.strip()

    @model_validator(mode="after")
    def validate_hours_present(self) -> "ScheduleOverride":
        """An available override must carry both start and end."""
        if not self.is_unavailable and (self.start_time is None or self.end_time is None):
            raise ValueError(
                f"Override for {self.date} needs startTime and endTime unless it is unavailable"
            )
        return self


class StructuredSchedule(_ScheduleModel):
    """Weekly schedule with date overrides."""
    kind: Literal["structured"] = "structured"
    days: List[ScheduleDay] = Field(default_factory=list)
    overrides: List[ScheduleOverride] = Field(default_factory=list)

    def override_for(self, day: datetime.date) -> Optional[ScheduleOverride]:
        for override in self.overrides:
            if override.date == day:
                return override
        return None


class LegacySchedule(_ScheduleModel):
    """Flat opening/closing hours gated by a comma separated list of weekdays."""
    kind: Literal["legacy"] = "legacy"
    opening_time: Optional[str] = None
    closing_time: Optional[str] = None
    work_days: Optional[str] = None

    @field_validator("opening_time", "closing_time")
    @classmethod
    def validate_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        parse_hhmm(value)
        return value.strip()

    def work_day_names(self) -> List[str]:
        if not self.work_days:
            return []
        return [part.strip().lower() for part in self.work_days.split(",") if part.strip()]


Schedule = Annotated[Union[StructuredSchedule, LegacySchedule], Field(discriminator="kind")]

_schedule_adapter: TypeAdapter = TypeAdapter(Schedule)


def schedule_from_dict(data: Dict[str, Any]) -> Union[StructuredSchedule, LegacySchedule]:
    """
    Build a schedule from collaborator data.

    The variant is taken from ``kind`` when present, otherwise inferred: any
    ``days``/``overrides`` key means a structured schedule, anything else is
    read as the legacy flat fields.
    """
    payload = dict(data)
    if "kind" not in payload:
        structured = "days" in payload or "overrides" in payload
        payload["kind"] = "structured" if structured else "legacy"
    return _schedule_adapter.validate_python(payload)
