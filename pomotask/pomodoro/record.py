"""Canonical task record and the rules for changing it.

The store may spell its keys ``dueDate``, ``duedate`` or ``due_date``; every
spelling is folded onto the canonical snake_case field names here.
"""

from dataclasses import asdict, dataclass, fields, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .errors import ValidationFailure


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class KeyStyle(str, Enum):
    LOWER = "lower"  # duedate, completedpomodoros
    CAMEL = "camel"  # dueDate, completedPomodoros
    SNAKE = "snake"  # due_date, completed_pomodoros


@dataclass(frozen=True)
class TaskRecord:
    id: Optional[int]
    title: str = ""
    description: str = ""
    completed: bool = False
    priority: Priority = Priority.MEDIUM
    due_date: Optional[date] = None
    completed_pomodoros: int = 0
    work_duration: int = 25
    break_duration: int = 5

    def as_dict(self, style: KeyStyle = KeyStyle.LOWER) -> Dict[str, Any]:
        """JSON friendly view in the given key casing."""
        data = asdict(self)
        data["priority"] = self.priority.value
        data["due_date"] = self.due_date.isoformat() if self.due_date else None
        return {style_key(k, style): v for k, v in data.items()}


FIELD_NAMES = tuple(f.name for f in fields(TaskRecord))
EDITABLE_FIELDS = frozenset(FIELD_NAMES) - {"id"}

_KEY_INDEX = {name.replace("_", "").lower(): name for name in FIELD_NAMES}


def canonical_key(key: str) -> Optional[str]:
    """Map any casing of a field name to the canonical name, or None."""
    return _KEY_INDEX.get(key.replace("_", "").lower())


def style_key(name: str, style: KeyStyle) -> str:
    if style is KeyStyle.SNAKE:
        return name
    if style is KeyStyle.LOWER:
        return name.replace("_", "")
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def detect_key_style(payload: Mapping[str, Any]) -> KeyStyle:
    """Guess which casing a store payload uses from its multi-word keys."""
    for key in payload:
        name = canonical_key(key)
        if name is None or "_" not in name:
            continue
        if "_" in key:
            return KeyStyle.SNAKE
        if key != key.lower():
            return KeyStyle.CAMEL
        return KeyStyle.LOWER
    return KeyStyle.LOWER


def canonical_payload(payload: Mapping[str, Any], strict: bool = True) -> Dict[str, Any]:
    """Rekey a payload onto canonical names.

    With ``strict`` unknown keys raise; otherwise they are passed through
    untouched so a schema layer can decide what to do with them.
    """
    out: Dict[str, Any] = {}
    for key, value in payload.items():
        name = canonical_key(key)
        if name is None:
            if strict:
                raise ValidationFailure(f"Unknown task field: {key!r}")
            out[key] = value
            continue
        out[name] = value
    return out


def parse_due_date(value: Any) -> Optional[date]:
    """Reduce a due date to a calendar day.

    Accepts dates, datetimes and ISO strings (``2024-05-01`` or a full
    timestamp such as ``2024-05-01T00:00:00.000Z``). Empty means no due date.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if "T" in text:
                return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
            return date.fromisoformat(text)
        except ValueError:
            pass
    raise ValidationFailure(f"Invalid due date: {value!r}. Use YYYY-MM-DD.")


def parse_priority(value: Any) -> Priority:
    if isinstance(value, Priority):
        return value
    if isinstance(value, str):
        for p in Priority:
            if p.value.lower() == value.strip().lower():
                return p
    raise ValidationFailure(f"Priority must be one of Low, Medium, High (got {value!r})")


def _positive_minutes(name: str, value: Any) -> int:
    minutes = _as_int(name, value)
    if minutes < 1:
        raise ValidationFailure(f"{name} must be at least 1 minute")
    return minutes


def _as_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationFailure(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        # int() also takes "1_000" and non-ASCII digits; only plain ASCII counts
        if text.isascii() and "_" not in text:
            try:
                return int(text)
            except ValueError:
                pass
    raise ValidationFailure(f"{name} must be an integer")


def validate_update(partial: Mapping[str, Any], task_id: Optional[int] = None) -> Dict[str, Any]:
    """Validate a partial edit and return it with canonical keys and types."""
    try:
        values = canonical_payload(partial, strict=True)
        if "id" in values:
            if values["id"] != task_id:
                raise ValidationFailure("Task id cannot be changed")
            del values["id"]

        clean: Dict[str, Any] = {}
        for name, value in values.items():
            if name == "title":
                if not isinstance(value, str):
                    raise ValidationFailure("Title must be a string")
                clean[name] = value
            elif name == "description":
                clean[name] = "" if value is None else str(value)
            elif name == "completed":
                if not isinstance(value, bool):
                    raise ValidationFailure("Completed must be true or false")
                clean[name] = value
            elif name == "priority":
                clean[name] = parse_priority(value)
            elif name == "due_date":
                clean[name] = parse_due_date(value)
            elif name == "completed_pomodoros":
                count = _as_int(name, value)
                if count < 0:
                    raise ValidationFailure("Completed pomodoros cannot be negative")
                clean[name] = count
            else:
                clean[name] = _positive_minutes(name, value)
        return clean
    except ValidationFailure as exc:
        exc.task_id = task_id
        raise


def apply_update(record: TaskRecord, values: Mapping[str, Any]) -> TaskRecord:
    """Return a copy of ``record`` with already validated values applied."""
    return replace(record, **values)


def record_from_store(payload: Mapping[str, Any]) -> TaskRecord:
    """Build a record from a store payload in whatever casing it uses."""
    values = {k: v for k, v in canonical_payload(payload, strict=False).items() if k in FIELD_NAMES}
    task_id = values.pop("id", None)
    if task_id is None:
        raise ValidationFailure("Store returned a task without an id")
    # The store may hand back NULL for columns it has no value for.
    values = {k: v for k, v in values.items() if v is not None or k == "due_date"}
    return TaskRecord(id=int(task_id), **validate_update(values, task_id=int(task_id)))


def to_store_payload(values: Mapping[str, Any], style: KeyStyle) -> Dict[str, Any]:
    """Serialize canonical values for the store, in the store's casing."""
    out: Dict[str, Any] = {}
    for name, value in values.items():
        if isinstance(value, Priority):
            value = value.value
        elif isinstance(value, date):
            value = value.isoformat()
        out[style_key(name, style)] = value
    return out
