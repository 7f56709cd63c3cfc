from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from crewtrack.db.enums import TaskStatus


class FieldEffect(Enum):
    CLEAR = "clear"
    SET_NOW = "set_now"
    SET_IF_UNSET = "set_if_unset"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class StatusEffects:
    started_at: FieldEffect
    completed_at: FieldEffect
    escalated_at: FieldEffect
    clears_escalation_details: bool


# Every status may be entered from every other status; only the timestamp and
# escalation side effects differ.
TASK_STATUS_EFFECTS: Mapping[TaskStatus, StatusEffects] = {
    TaskStatus.PENDING: StatusEffects(
        started_at=FieldEffect.CLEAR,
        completed_at=FieldEffect.CLEAR,
        escalated_at=FieldEffect.CLEAR,
        clears_escalation_details=True,
    ),
    TaskStatus.ONGOING: StatusEffects(
        started_at=FieldEffect.SET_IF_UNSET,
        completed_at=FieldEffect.UNCHANGED,
        escalated_at=FieldEffect.CLEAR,
        clears_escalation_details=True,
    ),
    TaskStatus.COMPLETED: StatusEffects(
        started_at=FieldEffect.SET_IF_UNSET,
        completed_at=FieldEffect.SET_NOW,
        escalated_at=FieldEffect.CLEAR,
        clears_escalation_details=True,
    ),
    TaskStatus.ESCALATED: StatusEffects(
        started_at=FieldEffect.SET_IF_UNSET,
        completed_at=FieldEffect.UNCHANGED,
        escalated_at=FieldEffect.SET_IF_UNSET,
        clears_escalation_details=False,
    ),
}


class InvalidTaskStatusError(ValueError):
    """Raised when a value is not one of the known task statuses."""


def parse_task_status(value: TaskStatus | str) -> TaskStatus:
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(status.value for status in TaskStatus)
        raise InvalidTaskStatusError(
            f"Unknown task status '{value}'. Allowed values: [{allowed}]"
        ) from exc


def effects_for(status: TaskStatus) -> StatusEffects:
    return TASK_STATUS_EFFECTS[status]
