from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from pydantic import BaseModel, Field, model_validator
from sqlalchemy import func
from sqlmodel import Session

from crewtrack.core.logging import get_logger
from crewtrack.db.enums import TaskCategory, TaskStatus
from crewtrack.db.models import ProjectTask, utc_now
from crewtrack.db.procedures import ChecklistItem
from crewtrack.db.repositories.task_repository import TaskRepository
from crewtrack.orchestration.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    store_errors,
)
from crewtrack.orchestration.state_machine import (
    FieldEffect,
    InvalidTaskStatusError,
    effects_for,
    parse_task_status,
)

logger = get_logger("crewtrack.orchestration.lifecycle")

_TIMESTAMP_FIELDS: tuple[str, ...] = ("started_at", "completed_at", "escalated_at")


def build_transition_values(
    target_status: TaskStatus,
    *,
    now: datetime,
    escalation_reason: str | None = None,
    is_manually_escalated: bool | None = None,
) -> dict[str, Any]:
    """
    Translate the status effects table into UPDATE values.

    "Set iff unset" becomes COALESCE(column, :now) so the database decides
    against the value it holds when the statement runs.
    """
    effects = effects_for(target_status)
    task = cast(Any, ProjectTask)
    values: dict[str, Any] = {"status": target_status.value}
    for field_name in _TIMESTAMP_FIELDS:
        effect: FieldEffect = getattr(effects, field_name)
        if effect is FieldEffect.CLEAR:
            values[field_name] = None
        elif effect is FieldEffect.SET_NOW:
            values[field_name] = now
        elif effect is FieldEffect.SET_IF_UNSET:
            values[field_name] = func.coalesce(getattr(task, field_name), now)

    if effects.clears_escalation_details:
        values["escalation_reason"] = None
        values["is_manually_escalated"] = False
    else:
        if escalation_reason is not None:
            values["escalation_reason"] = escalation_reason
        if is_manually_escalated is not None:
            values["is_manually_escalated"] = is_manually_escalated
    return values


class TaskDetailsInput(BaseModel):
    """Editable task fields. Only the fields present in the payload are written."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    category: TaskCategory | None = None
    deadline: datetime | None = None
    checklist_items: list[ChecklistItem] | None = None

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> TaskDetailsInput:
        for field_name in ("name", "checklist_items"):
            if field_name in self.model_fields_set and getattr(self, field_name) is None:
                raise ValueError(f"{field_name} cannot be null.")
        return self


def build_detail_values(payload: TaskDetailsInput) -> dict[str, Any]:
    values = payload.model_dump(exclude_unset=True, exclude={"checklist_items", "category"})
    if "category" in payload.model_fields_set:
        values["category"] = payload.category.value if payload.category is not None else None
    if payload.checklist_items is not None:
        values["checklist_items"] = [
            item.model_dump(mode="json") for item in payload.checklist_items
        ]
    return values


class TaskLifecycleManager:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.tasks = TaskRepository(session)

    def transition(
        self,
        task_id: int,
        new_status: TaskStatus | str,
        actor_id: str,
        *,
        escalation_reason: str | None = None,
        is_manually_escalated: bool | None = None,
    ) -> ProjectTask:
        """
        Move a task to new_status and derive its timestamp and escalation fields.

        Args:
            task_id: Target task.
            new_status: Any task status; every status is reachable from every other.
            actor_id: Recorded as updated_by.
            escalation_reason: Stored only when entering escalated.
            is_manually_escalated: Stored only when entering escalated.

        Returns:
            ProjectTask: The task as persisted after the update.

        Raises:
            ValidationError: If new_status is not a known status.
            NotFoundError: If the task does not exist or is archived.
            PersistenceFailure: If the store rejects the write.
        """
        operation = "task.transition"
        try:
            target_status = parse_task_status(new_status)
        except InvalidTaskStatusError as exc:
            raise ValidationError(
                str(exc), operation=operation, context={"task_id": task_id}
            ) from exc

        now = utc_now()
        values = build_transition_values(
            target_status,
            now=now,
            escalation_reason=escalation_reason,
            is_manually_escalated=is_manually_escalated,
        )
        with store_errors(self.session, operation, task_id=task_id):
            updated = self.tasks.apply_status_values(
                task_id=task_id,
                values=values,
                updated_by=actor_id,
                now=now,
            )
            if not updated:
                self.session.rollback()
                raise NotFoundError(
                    f"Task {task_id} does not exist or is archived.",
                    operation=operation,
                    context={"task_id": task_id},
                )
            self.session.commit()

        task = self._reload(task_id, operation=operation)
        logger.info(
            "task.transitioned",
            task_id=task_id,
            project_id=task.project_id,
            status=target_status.value,
            actor=actor_id,
        )
        return task

    def update_details(
        self,
        task_id: int,
        payload: TaskDetailsInput,
        actor_id: str,
        *,
        expected_version: int | None = None,
    ) -> ProjectTask:
        """
        Edit a task's descriptive fields. Status and lifecycle timestamps are never touched.

        Raises:
            ValidationError: If the payload carries no field to change.
            NotFoundError: If the task does not exist or is archived.
            ConflictError: If expected_version no longer matches the stored version.
            PersistenceFailure: If the store rejects the write.
        """
        operation = "task.update_details"
        context = {"task_id": task_id}
        values = build_detail_values(payload)
        if not values:
            raise ValidationError(
                "At least one task field must be provided.", operation=operation, context=context
            )

        with store_errors(self.session, operation, **context):
            updated = self.tasks.apply_values(
                task_id=task_id,
                values=values,
                updated_by=actor_id,
                expected_version=expected_version,
            )
            if not updated:
                self.session.rollback()
                current = self.tasks.get_active(task_id)
                if current is None:
                    raise NotFoundError(
                        f"Task {task_id} does not exist or is archived.",
                        operation=operation,
                        context=context,
                    )
                raise ConflictError(
                    f"Task {task_id} is at version {current.version}, not {expected_version}.",
                    operation=operation,
                    context={**context, "expected_version": expected_version},
                )
            self.session.commit()

        task = self._reload(task_id, operation=operation)
        logger.info(
            "task.details_updated",
            task_id=task_id,
            project_id=task.project_id,
            fields=sorted(values),
            actor=actor_id,
        )
        return task

    def _reload(self, task_id: int, *, operation: str) -> ProjectTask:
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(
                f"Task {task_id} disappeared after update.",
                operation=operation,
                context={"task_id": task_id},
            )
        self.session.refresh(task)
        return task
