from datetime import date
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .config import get_settings
from .pomodoro.engine import Phase
from .pomodoro.errors import ValidationFailure
from .pomodoro.record import Priority, canonical_payload, parse_due_date, parse_priority


class _TaskFields(BaseModel):
    """Accepts dueDate / duedate / due_date alike; responds in lowercase keys."""

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def fold_key_casing(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return canonical_payload(data, strict=False)
        return data

    @field_validator("due_date", mode="before", check_fields=False)
    @classmethod
    def parse_due(cls, value: Any) -> Optional[date]:
        try:
            return parse_due_date(value)
        except ValidationFailure as exc:
            raise ValueError(exc.message) from exc

    @field_validator("priority", mode="before", check_fields=False)
    @classmethod
    def parse_prio(cls, value: Any) -> Any:
        if value is None:
            return value
        try:
            return parse_priority(value)
        except ValidationFailure as exc:
            raise ValueError(exc.message) from exc


class TaskCreate(_TaskFields):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=1000)
    priority: Priority = Priority.MEDIUM
    due_date: Optional[date] = Field(None, serialization_alias="duedate")
    work_duration: int = Field(
        default_factory=lambda: get_settings().default_work_minutes,
        ge=1,
        serialization_alias="workduration",
    )
    break_duration: int = Field(
        default_factory=lambda: get_settings().default_break_minutes,
        ge=1,
        serialization_alias="breakduration",
    )

    @field_validator("description", mode="before")
    @classmethod
    def blank_description(cls, value: Any) -> Any:
        return "" if value is None else value


class TaskUpdate(_TaskFields):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    due_date: Optional[date] = None
    completed_pomodoros: Optional[int] = Field(None, ge=0)
    work_duration: Optional[int] = Field(None, ge=1)
    break_duration: Optional[int] = Field(None, ge=1)


class TaskResponse(TaskCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    completed: bool = False
    completed_pomodoros: int = Field(0, ge=0, serialization_alias="completedpomodoros")


class TaskFilter(BaseModel):
    status: Literal["all", "active", "completed"] = "all"
    priority: Optional[Priority] = None
    sort_by: Literal["priority", "duedate"] = "priority"
    order: Literal["asc", "desc"] = "desc"


# Timer related schemas
class TimerOpen(BaseModel):
    sound_id: Optional[str] = None


class DurationChange(BaseModel):
    phase: Phase
    minutes: int = Field(..., ge=1)


class SoundChange(BaseModel):
    sound_id: str = Field(..., min_length=1)
