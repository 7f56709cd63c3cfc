from __future__ import annotations

from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlmodel import Session

from crewtrack.db.enums import TaskCategory, TaskStatus
from crewtrack.db.models import utc_now
from crewtrack.db.procedures import ChecklistItem
from crewtrack.orchestration.errors import ConflictError, NotFoundError, ValidationError
from crewtrack.orchestration.lifecycle import TaskDetailsInput, TaskLifecycleManager
from tests.shared import as_utc, make_project, make_task

TOLERANCE = timedelta(seconds=5)


@pytest.fixture
def task_id(session: Session) -> int:
    project = make_project(session)
    task = make_task(session, project, name="Rig lights")
    session.commit()
    assert task.id is not None
    return task.id


def test_pending_clears_all_timestamps_and_escalation_fields(
    session: Session, task_id: int
) -> None:
    manager = TaskLifecycleManager(session)
    manager.transition(
        task_id,
        TaskStatus.ESCALATED,
        "avery",
        escalation_reason="Truck late",
        is_manually_escalated=True,
    )
    manager.transition(task_id, TaskStatus.COMPLETED, "avery")

    task = manager.transition(task_id, TaskStatus.PENDING, "avery")

    assert task.status == TaskStatus.PENDING
    assert task.started_at is None
    assert task.completed_at is None
    assert task.escalated_at is None
    assert task.escalation_reason is None
    assert task.is_manually_escalated is False


def test_completed_from_pending_sets_started_at_equal_to_completed_at(
    session: Session, task_id: int
) -> None:
    before = utc_now()

    task = TaskLifecycleManager(session).transition(task_id, TaskStatus.COMPLETED, "avery")

    completed_at = as_utc(task.completed_at)
    assert completed_at is not None
    assert before - TOLERANCE <= completed_at <= utc_now() + TOLERANCE
    assert as_utc(task.started_at) == completed_at


def test_completed_keeps_started_at_and_refreshes_completed_at(
    session: Session, task_id: int
) -> None:
    manager = TaskLifecycleManager(session)
    started = as_utc(manager.transition(task_id, TaskStatus.ONGOING, "avery").started_at)
    first_completed = as_utc(manager.transition(task_id, TaskStatus.COMPLETED, "avery").completed_at)

    task = manager.transition(task_id, TaskStatus.COMPLETED, "jordan")

    assert as_utc(task.started_at) == started
    second_completed = as_utc(task.completed_at)
    assert first_completed is not None and second_completed is not None
    assert second_completed >= first_completed
    assert task.updated_by == "jordan"


def test_ongoing_twice_keeps_first_started_at(session: Session, task_id: int) -> None:
    manager = TaskLifecycleManager(session)
    first = as_utc(manager.transition(task_id, TaskStatus.ONGOING, "avery").started_at)

    second = as_utc(manager.transition(task_id, TaskStatus.ONGOING, "avery").started_at)

    assert first is not None
    assert second == first


def test_escalated_sets_escalated_at_once_and_keeps_reason(
    session: Session, task_id: int
) -> None:
    manager = TaskLifecycleManager(session)
    first = manager.transition(
        task_id,
        "escalated",
        "avery",
        escalation_reason="Permit missing",
        is_manually_escalated=True,
    )
    escalated_at = as_utc(first.escalated_at)

    again = manager.transition(task_id, TaskStatus.ESCALATED, "avery")

    assert escalated_at is not None
    assert as_utc(again.escalated_at) == escalated_at
    assert again.started_at is not None
    assert again.escalation_reason == "Permit missing"
    assert again.is_manually_escalated is True


def test_ongoing_after_escalation_clears_escalation(session: Session, task_id: int) -> None:
    manager = TaskLifecycleManager(session)
    escalated = manager.transition(
        task_id, TaskStatus.ESCALATED, "avery", escalation_reason="Rain"
    )
    started_at = as_utc(escalated.started_at)

    task = manager.transition(task_id, TaskStatus.ONGOING, "avery")

    assert task.escalated_at is None
    assert task.escalation_reason is None
    assert task.is_manually_escalated is False
    assert as_utc(task.started_at) == started_at


def test_transition_bumps_version_and_records_actor(session: Session, task_id: int) -> None:
    task = TaskLifecycleManager(session).transition(task_id, TaskStatus.ONGOING, "sam")

    assert task.version == 2
    assert task.updated_by == "sam"


def test_transition_rejects_unknown_status(session: Session, task_id: int) -> None:
    with pytest.raises(ValidationError) as exc_info:
        TaskLifecycleManager(session).transition(task_id, "paused", "avery")

    assert exc_info.value.operation == "task.transition"
    assert exc_info.value.context == {"task_id": task_id}


def test_transition_missing_task_raises_not_found(session: Session) -> None:
    with pytest.raises(NotFoundError):
        TaskLifecycleManager(session).transition(9999, TaskStatus.ONGOING, "avery")


def test_transition_archived_task_raises_not_found(session: Session) -> None:
    project = make_project(session)
    task = make_task(session, project, is_archived=True)
    session.commit()
    assert task.id is not None

    with pytest.raises(NotFoundError):
        TaskLifecycleManager(session).transition(task.id, TaskStatus.ONGOING, "avery")


def test_update_details_edits_fields_without_touching_status_or_timestamps(
    session: Session, task_id: int
) -> None:
    manager = TaskLifecycleManager(session)
    ongoing = manager.transition(task_id, TaskStatus.ONGOING, "avery")
    started_at = as_utc(ongoing.started_at)
    deadline = utc_now() + timedelta(days=3)

    task = manager.update_details(
        task_id,
        TaskDetailsInput(
            name="Rig key lights",
            category=TaskCategory.EXECUTE,
            deadline=deadline,
            checklist_items=[ChecklistItem(text="Check dimmers", completed=True)],
        ),
        "jordan",
    )

    assert task.name == "Rig key lights"
    assert task.category == TaskCategory.EXECUTE
    assert as_utc(task.deadline) == deadline
    assert task.checklist_items == [{"text": "Check dimmers", "completed": True}]
    assert task.status == TaskStatus.ONGOING
    assert as_utc(task.started_at) == started_at
    assert task.completed_at is None
    assert task.updated_by == "jordan"
    assert task.version == 3


def test_update_details_only_writes_supplied_fields(session: Session, task_id: int) -> None:
    manager = TaskLifecycleManager(session)
    manager.update_details(task_id, TaskDetailsInput(description="Front of house"), "avery")

    task = manager.update_details(task_id, TaskDetailsInput(description=None), "avery")

    assert task.name == "Rig lights"
    assert task.description is None


def test_update_details_requires_at_least_one_field(session: Session, task_id: int) -> None:
    with pytest.raises(ValidationError) as exc_info:
        TaskLifecycleManager(session).update_details(task_id, TaskDetailsInput(), "avery")

    assert exc_info.value.operation == "task.update_details"


def test_update_details_rejects_stale_version(session: Session, task_id: int) -> None:
    manager = TaskLifecycleManager(session)
    manager.update_details(task_id, TaskDetailsInput(name="First edit"), "avery")

    with pytest.raises(ConflictError) as exc_info:
        manager.update_details(
            task_id, TaskDetailsInput(name="Second edit"), "jordan", expected_version=1
        )

    assert exc_info.value.context["expected_version"] == 1
    session.expire_all()
    assert manager.tasks.get(task_id).name == "First edit"  # type: ignore[union-attr]


def test_update_details_archived_task_raises_not_found(session: Session) -> None:
    project = make_project(session)
    task = make_task(session, project, is_archived=True)
    session.commit()

    with pytest.raises(NotFoundError):
        TaskLifecycleManager(session).update_details(
            int(task.id or 0), TaskDetailsInput(name="Revived"), "avery"
        )


def test_task_details_input_rejects_null_name() -> None:
    with pytest.raises(PydanticValidationError, match="name cannot be null"):
        TaskDetailsInput.model_validate({"name": None})
