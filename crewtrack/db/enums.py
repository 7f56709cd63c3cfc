from __future__ import annotations

from enum import StrEnum


class ProjectStatus(StrEnum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TaskStatus(StrEnum):
    PENDING = "pending"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    ESCALATED = "escalated"


class TaskCategory(StrEnum):
    MONITOR = "monitor"
    COORDINATE = "coordinate"
    EXECUTE = "execute"


TASK_STARTED_STATUSES: frozenset[TaskStatus] = frozenset(
    {
        TaskStatus.ONGOING,
        TaskStatus.COMPLETED,
        TaskStatus.ESCALATED,
    }
)


OVERDUE_ELIGIBLE_STATUSES: tuple[TaskStatus, ...] = (
    TaskStatus.PENDING,
    TaskStatus.ONGOING,
)
