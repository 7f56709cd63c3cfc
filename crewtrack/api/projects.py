from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from fastapi import APIRouter, status
from pydantic import BaseModel, ConfigDict, Field

from crewtrack.api.deps import DEFAULT_API_ACTOR, ProgressionDep
from crewtrack.api.errors import error_response_docs
from crewtrack.api.tasks import TaskRead
from crewtrack.core.logging import bind_log_context, get_logger
from crewtrack.db.procedures import ProjectFields, TemplateSnapshot
from crewtrack.orchestration.progression import CustomTaskInput

router = APIRouter(prefix="/projects", tags=["projects"])
logger = get_logger("crewtrack.api.projects")


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    template: TemplateSnapshot
    actor: str = Field(default=DEFAULT_API_ACTOR, min_length=1, max_length=255)
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Autumn commercial shoot",
                "template": {
                    "roles": [{"role_name": "Producer", "department_name": "Production"}],
                    "phases": [
                        {
                            "phase_name": "Pre-production",
                            "phase_order": 1,
                            "steps": [
                                {
                                    "step_name": "Planning",
                                    "step_order": 1,
                                    "tasks": [
                                        {
                                            "name": "Lock budget",
                                            "task_order": 1,
                                            "role_name": "Producer",
                                        }
                                    ],
                                }
                            ],
                        }
                    ],
                },
                "actor": "avery",
            }
        }
    )


class ProjectRead(BaseModel):
    id: int
    name: str
    description: str | None
    status: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    version: int
    model_config = ConfigDict(from_attributes=True)


class ProjectSummaryRead(BaseModel):
    project_id: int
    name: str
    status: str
    loaded_tasks: int
    completed: int
    ongoing: int
    pending: int
    escalated: int
    total_roles: int
    filled_roles: int
    completion_percentage: float
    model_config = ConfigDict(from_attributes=True)


class PhaseProgressRead(BaseModel):
    phase_name: str
    phase_order: int
    total: int
    completed: int
    ongoing: int
    pending: int
    escalated: int
    model_config = ConfigDict(from_attributes=True)


class CanStartRead(BaseModel):
    project_id: int
    can_start: bool


class ProjectStateRead(BaseModel):
    project_id: int
    status: str
    phase_loaded: bool


class CustomTaskCreate(CustomTaskInput):
    crew_ids: list[int] = Field(default_factory=list, max_length=50)
    actor: str = Field(default=DEFAULT_API_ACTOR, min_length=1, max_length=255)


class ProjectRoleRead(BaseModel):
    id: int
    project_id: int
    role_name: str
    department_name: str
    is_filled: bool
    model_config = ConfigDict(from_attributes=True)


class RoleCrewAssign(BaseModel):
    crew_id: int = Field(gt=0)
    actor: str = Field(default=DEFAULT_API_ACTOR, min_length=1, max_length=255)


class RoleCrewRead(BaseModel):
    project_id: int
    role_id: int
    crew_id: int
    is_filled: bool


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=ProjectRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(status.HTTP_409_CONFLICT, status.HTTP_422_UNPROCESSABLE_CONTENT),
    ),
)
def create_project(payload: ProjectCreate, progression: ProgressionDep) -> ProjectRead:
    project = progression.create_project(
        payload.template,
        ProjectFields(name=payload.name, description=payload.description),
        payload.actor,
    )
    return ProjectRead.model_validate(project)


@router.get(
    "/{project_id}",
    response_model=ProjectSummaryRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(status.HTTP_404_NOT_FOUND),
    ),
)
def get_project(project_id: int, progression: ProgressionDep) -> ProjectSummaryRead:
    return ProjectSummaryRead.model_validate(progression.get_project_summary(project_id))


@router.get(
    "/{project_id}/phase-progress",
    response_model=list[PhaseProgressRead],
)
def get_phase_progress(project_id: int, progression: ProgressionDep) -> list[PhaseProgressRead]:
    return [
        PhaseProgressRead.model_validate(phase)
        for phase in progression.compute_phase_progress(project_id)
    ]


@router.get("/{project_id}/can-start", response_model=CanStartRead)
def can_start(project_id: int, progression: ProgressionDep) -> CanStartRead:
    return CanStartRead(project_id=project_id, can_start=progression.can_project_start(project_id))


@router.post(
    "/{project_id}/start",
    response_model=ProjectStateRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(
            status.HTTP_404_NOT_FOUND,
            status.HTTP_409_CONFLICT,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        ),
    ),
)
def start_project(project_id: int, progression: ProgressionDep) -> ProjectStateRead:
    bind_log_context(project_id=project_id)
    progression.start_project(project_id)
    summary = progression.get_project_summary(project_id)
    return ProjectStateRead(project_id=project_id, status=summary.status, phase_loaded=True)


@router.post(
    "/{project_id}/advance",
    response_model=ProjectStateRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(
            status.HTTP_404_NOT_FOUND,
            status.HTTP_409_CONFLICT,
            status.HTTP_422_UNPROCESSABLE_CONTENT,
        ),
    ),
)
def advance_project(
    project_id: int,
    progression: ProgressionDep,
    actor: str = DEFAULT_API_ACTOR,
) -> ProjectStateRead:
    bind_log_context(project_id=project_id)
    loaded = progression.advance_project(project_id, actor)
    summary = progression.get_project_summary(project_id)
    return ProjectStateRead(project_id=project_id, status=summary.status, phase_loaded=loaded)


@router.post(
    "/{project_id}/custom-tasks",
    status_code=status.HTTP_201_CREATED,
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
def create_custom_task(
    project_id: int,
    payload: CustomTaskCreate,
    progression: ProgressionDep,
) -> TaskRead:
    bind_log_context(project_id=project_id)
    task_input = CustomTaskInput.model_validate(
        payload.model_dump(exclude={"crew_ids", "actor"})
    )
    task = progression.create_custom_task(
        project_id,
        task_input,
        payload.actor,
        crew_ids=payload.crew_ids,
    )
    return TaskRead.model_validate(task)


@router.get(
    "/{project_id}/roles",
    response_model=list[ProjectRoleRead],
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(status.HTTP_404_NOT_FOUND),
    ),
)
def list_roles(project_id: int, progression: ProgressionDep) -> list[ProjectRoleRead]:
    return [ProjectRoleRead.model_validate(role) for role in progression.list_roles(project_id)]


@router.post(
    "/{project_id}/roles/{role_id}/crew",
    response_model=RoleCrewRead,
    responses=cast(
        dict[int | str, dict[str, Any]],
        error_response_docs(status.HTTP_404_NOT_FOUND, status.HTTP_409_CONFLICT),
    ),
)
def assign_role_crew(
    project_id: int,
    role_id: int,
    payload: RoleCrewAssign,
    progression: ProgressionDep,
) -> RoleCrewRead:
    bind_log_context(project_id=project_id, crew_id=payload.crew_id)
    progression.assign_crew_to_role(project_id, role_id, payload.crew_id, payload.actor)
    return RoleCrewRead(
        project_id=project_id,
        role_id=role_id,
        crew_id=payload.crew_id,
        is_filled=True,
    )
