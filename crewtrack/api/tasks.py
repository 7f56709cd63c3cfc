from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, cast

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel, ConfigDict, Field

from crewtrack.api.deps import (
    DEFAULT_API_ACTOR,
    AssignmentDep,
    LifecycleDep,
    QueryDep,
)
from crewtrack.api.errors import error_response_docs
from crewtrack.core.config import get_settings
from crewtrack.core.logging import bind_log_context, get_logger
from crewtrack.db.enums import TaskCategory, TaskStatus
from crewtrack.db.repositories.assignment_repository import TaskAssignmentDetail
from crewtrack.db.repositories.task_repository import TaskFilters
from crewtrack.orchestration.assignment import CrewRolePair
from crewtrack.orchestration.lifecycle import TaskDetailsInput

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = get_logger("crewtrack.api.tasks")


class TaskRead(BaseModel):
    id: int
    project_id: int
    name: str
    description: str | None
    phase_name: str
    phase_order: int
    step_name: str
    step_order: int
    task_order: int
    status: str
    category: str | None
    parent_task_id: int | None
    assigned_role_id: int | None
    checklist_items: list[dict[str, Any]]
    escalation_reason: str | None
    escalated_at: datetime | None
    is_manually_escalated: bool
    started_at: datetime | None
    completed_at: datetime | None
    deadline: datetime | None
    is_loaded: bool
    is_custom: bool
    created_by: str
    updated_by: str | None
    created_at: datetime
    updated_at: datetime
    version: int
    model_config = ConfigDict(
        from_attributes=True,
        json_schema_extra={
            "example": {
                "id": 41,
                "project_id": 3,
                "name": "Lock budget",
                "description": None,
                "phase_name": "Pre-production",
                "phase_order": 1,
                "step_name": "Planning",
                "step_order": 1,
                "task_order": 1,
                "status": "ongoing",
                "category": "coordinate",
                "parent_task_id": None,
                "assigned_role_id": 7,
                "checklist_items": [{"text": "Collect quotes", "completed": True}],
                "escalation_reason": None,
                "escalated_at": None,
                "is_manually_escalated": False,
                "started_at": "2026-10-12T09:00:00Z",
                "completed_at": None,
                "deadline": "2026-10-20T17:00:00Z",
                "is_loaded": True,
                "is_custom": False,
                "created_by": "system",
                "updated_by": "avery",
                "created_at": "2026-10-10T08:00:00Z",
                "updated_at": "2026-10-12T09:00:00Z",
                "version": 2,
            }
        },
    )


class TaskPageRead(BaseModel):
    items: list[TaskRead]
    total_count: int
    has_next_page: bool
    page: int
    page_size: int


class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    escalation_reason: str | None = Field(default=None, max_length=2000)
    is_manually_escalated: bool | None = None
    actor: str = Field(default=DEFAULT_API_ACTOR, min_length=1, max_length=255)
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "escalated",
                "escalation_reason": "Supplier missed delivery",
                "is_manually_escalated": True,
                "actor": "avery",
            }
        }
    )


class TaskDetailsUpdate(TaskDetailsInput):
    actor: str = Field(default=DEFAULT_API_ACTOR, min_length=1, max_length=255)
    expected_version: int | None = Field(default=None, ge=1)
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Lock revised budget",
                "deadline": "2026-10-24T17:00:00Z",
                "checklist_items": [{"text": "Collect quotes", "completed": True}],
                "expected_version": 2,
                "actor": "avery",
            }
        }
    )


class AssignmentCreate(BaseModel):
    crew_id: int = Field(gt=0)
    role_id: int | None = Field(default=None, gt=0)
    actor: str = Field(default=DEFAULT_API_ACTOR, min_length=1, max_length=255)


class AssignmentPair(BaseModel):
    crew_id: int = Field(gt=0)
    role_id: int = Field(gt=0)


class AssignmentBatchCreate(BaseModel):
    assignments: list[AssignmentPair] = Field(min_length=1, max_length=100)
    actor: str = Field(default=DEFAULT_API_ACTOR, min_length=1, max_length=255)


class AssignmentRead(BaseModel):
    assignment_id: int
    task_id: int
    crew_id: int
    crew_name: str
    crew_email: str
    project_role_id: int
    role_name: str
    department_name: str


class AssignmentBatchRead(BaseModel):
    task_id: int
    created: int


def _to_assignment_read(detail: TaskAssignmentDetail) -> AssignmentRead:
    return AssignmentRead(
        assignment_id=detail.assignment_id,
        task_id=detail.task_id,
        crew_id=detail.crew_id,
        crew_name=detail.crew_name,
        crew_email=detail.crew_email,
        project_role_id=detail.project_role_id,
        role_name=detail.role_name,
        department_name=detail.department_name,
    )


@router.get(
    "",
    response_model=TaskPageRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(status.HTTP_422_UNPROCESSABLE_CONTENT),
    ),
)
def list_tasks(
    engine: QueryDep,
    project_id: Annotated[int, Query(gt=0)],
    status_filter: Annotated[list[TaskStatus] | None, Query(alias="status")] = None,
    phase_order: Annotated[int | None, Query(ge=0)] = None,
    step_order: Annotated[int | None, Query(ge=0)] = None,
    category: Annotated[list[TaskCategory] | None, Query()] = None,
    is_loaded: bool = True,
    include_unloaded: bool = False,
    is_custom: bool | None = None,
    search: Annotated[str | None, Query(max_length=200)] = None,
    assigned_crew_id: Annotated[int | None, Query(gt=0)] = None,
    deadline_before: datetime | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int | None, Query(ge=1)] = None,
) -> TaskPageRead:
    filters = TaskFilters(
        project_id=project_id,
        statuses=frozenset(status_filter) if status_filter else None,
        phase_order=phase_order,
        step_order=step_order,
        categories=frozenset(category) if category else None,
        is_loaded=None if include_unloaded else is_loaded,
        is_custom=is_custom,
        search=search,
        assigned_crew_id=assigned_crew_id,
        deadline_before=deadline_before,
    )
    result = engine.paginate(
        filters,
        page=page,
        page_size=page_size or get_settings().default_page_size,
    )
    return TaskPageRead(
        items=[TaskRead.model_validate(task) for task in result.items],
        total_count=result.total_count,
        has_next_page=result.has_next_page,
        page=result.page,
        page_size=result.page_size,
    )


@router.get("/overdue", response_model=list[TaskRead])
def list_overdue_tasks(
    engine: QueryDep,
    project_id: Annotated[int | None, Query(gt=0)] = None,
) -> list[TaskRead]:
    return [
        TaskRead.model_validate(task)
        for task in engine.list_overdue_tasks(project_id=project_id)
    ]


@router.get(
    "/{task_id}",
    response_model=TaskRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(status.HTTP_404_NOT_FOUND, status.HTTP_422_UNPROCESSABLE_CONTENT),
    ),
)
def get_task(task_id: int, engine: QueryDep) -> TaskRead:
    return TaskRead.model_validate(engine.get_task(task_id))


@router.patch(
    "/{task_id}",
    response_model=TaskRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(
            status.HTTP_404_NOT_FOUND,
            status.HTTP_409_CONFLICT,
            status.HTTP_422_UNPROCESSABLE_CONTENT,
        ),
    ),
)
def update_task_details(
    task_id: int, payload: TaskDetailsUpdate, lifecycle: LifecycleDep
) -> TaskRead:
    bind_log_context(task_id=task_id)
    changes = TaskDetailsInput.model_validate(
        payload.model_dump(exclude_unset=True, exclude={"actor", "expected_version"})
    )
    task = lifecycle.update_details(
        task_id, changes, payload.actor, expected_version=payload.expected_version
    )
    return TaskRead.model_validate(task)


@router.post(
    "/{task_id}/status",
    response_model=TaskRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(
            status.HTTP_404_NOT_FOUND,
            status.HTTP_422_UNPROCESSABLE_CONTENT,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        ),
    ),
)
def transition_task(task_id: int, payload: TaskStatusUpdate, lifecycle: LifecycleDep) -> TaskRead:
    bind_log_context(task_id=task_id)
    task = lifecycle.transition(
        task_id,
        payload.status,
        payload.actor,
        escalation_reason=payload.escalation_reason,
        is_manually_escalated=payload.is_manually_escalated,
    )
    return TaskRead.model_validate(task)


@router.get(
    "/{task_id}/assignments",
    response_model=list[AssignmentRead],
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(status.HTTP_404_NOT_FOUND),
    ),
)
def list_assignments(task_id: int, guard: AssignmentDep) -> list[AssignmentRead]:
    return [_to_assignment_read(detail) for detail in guard.list_assignments(task_id)]


@router.post(
    "/{task_id}/assignments",
    response_model=list[AssignmentRead],
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(
            status.HTTP_404_NOT_FOUND,
            status.HTTP_409_CONFLICT,
            status.HTTP_422_UNPROCESSABLE_CONTENT,
        ),
    ),
)
def assign_crew(
    task_id: int,
    payload: AssignmentCreate,
    guard: AssignmentDep,
) -> list[AssignmentRead]:
    bind_log_context(task_id=task_id, crew_id=payload.crew_id)
    guard.assign(task_id, payload.crew_id, payload.actor, role_id=payload.role_id)
    return [_to_assignment_read(detail) for detail in guard.list_assignments(task_id)]


@router.post(
    "/{task_id}/assignments/batch",
    status_code=status.HTTP_201_CREATED,
    response_model=AssignmentBatchRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(
            status.HTTP_404_NOT_FOUND,
            status.HTTP_409_CONFLICT,
            status.HTTP_422_UNPROCESSABLE_CONTENT,
        ),
    ),
)
def assign_crew_batch(
    task_id: int,
    payload: AssignmentBatchCreate,
    guard: AssignmentDep,
) -> AssignmentBatchRead:
    bind_log_context(task_id=task_id)
    rows = guard.assign_many(
        task_id,
        [CrewRolePair(crew_id=pair.crew_id, role_id=pair.role_id) for pair in payload.assignments],
        payload.actor,
    )
    return AssignmentBatchRead(task_id=task_id, created=len(rows))


@router.delete(
    "/{task_id}/assignments/{crew_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(status.HTTP_404_NOT_FOUND, status.HTTP_409_CONFLICT),
    ),
)
def remove_crew(task_id: int, crew_id: int, guard: AssignmentDep) -> Response:
    bind_log_context(task_id=task_id, crew_id=crew_id)
    guard.remove(task_id, crew_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
