"""Store-side procedures consumed by the orchestration services.

Each procedure runs inside the caller's session and never commits: the
calling service decides the transaction boundary. ``SqlStoreProcedures`` is the
relational implementation; anything satisfying ``StoreProcedures`` can stand in
for it (for example a remote RPC gateway).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, cast

from pydantic import BaseModel, Field, model_validator
from sqlalchemy import exists, func, update
from sqlmodel import Session, select

from crewtrack.core.logging import get_logger
from crewtrack.db.enums import OVERDUE_ELIGIBLE_STATUSES, ProjectStatus, TaskCategory, TaskStatus
from crewtrack.db.models import (
    Project,
    ProjectCrewAssignment,
    ProjectRole,
    ProjectTask,
    ProjectTaskAssignment,
    utc_now,
)

logger = get_logger("crewtrack.db.procedures")

SYSTEM_ACTOR = "system"
OVERDUE_ESCALATION_REASON = "Task deadline exceeded"


class ChecklistItem(BaseModel):
    text: str = Field(min_length=1, max_length=500)
    completed: bool = False


class TemplateRole(BaseModel):
    role_name: str = Field(min_length=1, max_length=200)
    department_name: str = Field(min_length=1, max_length=200)


class TemplateTask(BaseModel):
    key: str | None = Field(default=None, max_length=120)
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    task_order: int = Field(ge=0)
    category: TaskCategory | None = None
    role_name: str | None = Field(default=None, max_length=200)
    parent_key: str | None = Field(default=None, max_length=120)
    deadline: datetime | None = None
    checklist_items: list[ChecklistItem] = Field(default_factory=list)


class TemplateStep(BaseModel):
    step_name: str = Field(min_length=1, max_length=200)
    step_order: int = Field(ge=0)
    tasks: list[TemplateTask] = Field(default_factory=list)


class TemplatePhase(BaseModel):
    phase_name: str = Field(min_length=1, max_length=200)
    phase_order: int = Field(ge=0)
    steps: list[TemplateStep] = Field(default_factory=list)


class TemplateSnapshot(BaseModel):
    roles: list[TemplateRole] = Field(default_factory=list)
    phases: list[TemplatePhase] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_references(self) -> TemplateSnapshot:
        role_names = {role.role_name for role in self.roles}
        if len(role_names) != len(self.roles):
            raise ValueError("Template role names must be unique.")
        positions: set[tuple[int, int, int]] = set()
        for phase in self.phases:
            for step in phase.steps:
                for task in step.tasks:
                    position = (phase.phase_order, step.step_order, task.task_order)
                    if position in positions:
                        raise ValueError(
                            f"Duplicate task_order {task.task_order} in phase "
                            f"{phase.phase_order}, step {step.step_order}."
                        )
                    positions.add(position)
        keys: set[str] = set()
        for task in self.iter_tasks():
            if task.role_name is not None and task.role_name not in role_names:
                raise ValueError(f"Task '{task.name}' references unknown role '{task.role_name}'.")
            if task.key is not None:
                if task.key in keys:
                    raise ValueError(f"Duplicate template task key '{task.key}'.")
                keys.add(task.key)
        for task in self.iter_tasks():
            if task.parent_key is not None and task.parent_key not in keys:
                raise ValueError(
                    f"Task '{task.name}' references unknown parent '{task.parent_key}'."
                )
        return self

    def iter_tasks(self) -> list[TemplateTask]:
        return [task for phase in self.phases for step in phase.steps for task in step.tasks]


class ProjectFields(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)


class StoreProcedures(Protocol):
    def create_project_from_template(
        self,
        template: TemplateSnapshot,
        fields: ProjectFields,
        created_by: str,
    ) -> int: ...

    def assign_crew_to_project_role(
        self,
        project_id: int,
        role_id: int,
        crew_id: int,
        assigned_by: str,
    ) -> bool: ...

    def can_project_start(self, project_id: int) -> bool: ...

    def load_next_phase_tasks(self, project_id: int) -> bool: ...

    def escalate_overdue_tasks(self, now: datetime | None = None) -> int: ...


class ProcedureError(RuntimeError):
    """Raised when a procedure's own precondition fails inside the store."""


class SqlStoreProcedures:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create_project_from_template(
        self,
        template: TemplateSnapshot,
        fields: ProjectFields,
        created_by: str,
    ) -> int:
        project = Project(
            name=fields.name,
            description=fields.description,
            status=ProjectStatus.DRAFT,
            template_snapshot=template.model_dump(mode="json"),
            created_by=created_by,
        )
        self.session.add(project)
        self.session.flush()
        project_id = cast(int, project.id)

        role_ids: dict[str, int] = {}
        for template_role in template.roles:
            role = ProjectRole(
                project_id=project_id,
                role_name=template_role.role_name,
                department_name=template_role.department_name,
            )
            self.session.add(role)
            self.session.flush()
            role_ids[template_role.role_name] = cast(int, role.id)

        task_ids: dict[str, int] = {}
        pending_parents: list[tuple[ProjectTask, str]] = []
        for phase in sorted(template.phases, key=lambda item: item.phase_order):
            for step in sorted(phase.steps, key=lambda item: item.step_order):
                for template_task in sorted(step.tasks, key=lambda item: item.task_order):
                    task = ProjectTask(
                        project_id=project_id,
                        name=template_task.name,
                        description=template_task.description,
                        phase_name=phase.phase_name,
                        phase_order=phase.phase_order,
                        step_name=step.step_name,
                        step_order=step.step_order,
                        task_order=template_task.task_order,
                        category=template_task.category,
                        deadline=template_task.deadline,
                        assigned_role_id=(
                            role_ids[template_task.role_name]
                            if template_task.role_name is not None
                            else None
                        ),
                        checklist_items=[
                            item.model_dump(mode="json") for item in template_task.checklist_items
                        ],
                        is_loaded=False,
                        created_by=created_by,
                    )
                    self.session.add(task)
                    self.session.flush()
                    if template_task.key is not None:
                        task_ids[template_task.key] = cast(int, task.id)
                    if template_task.parent_key is not None:
                        pending_parents.append((task, template_task.parent_key))

        for task, parent_key in pending_parents:
            task.parent_task_id = task_ids[parent_key]
            self.session.add(task)
        self.session.flush()

        logger.info(
            "procedure.project_created",
            project_id=project_id,
            role_count=len(role_ids),
            task_count=len(template.iter_tasks()),
        )
        return project_id

    def assign_crew_to_project_role(
        self,
        project_id: int,
        role_id: int,
        crew_id: int,
        assigned_by: str,
    ) -> bool:
        role = self.session.get(ProjectRole, role_id)
        if role is None or role.project_id != project_id:
            raise ProcedureError(f"Project role {role_id} not found in project {project_id}.")

        existing = self.session.exec(
            select(ProjectCrewAssignment)
            .where(ProjectCrewAssignment.project_id == project_id)
            .where(ProjectCrewAssignment.project_role_id == role_id)
            .where(ProjectCrewAssignment.crew_id == crew_id)
        ).first()
        if existing is None:
            self.session.add(
                ProjectCrewAssignment(
                    project_id=project_id,
                    project_role_id=role_id,
                    crew_id=crew_id,
                    assigned_by=assigned_by,
                )
            )
        role.is_filled = True
        role.updated_at = utc_now()
        self.session.add(role)
        self.session.flush()
        return True

    def can_project_start(self, project_id: int) -> bool:
        statement = (
            select(func.count())
            .where(ProjectRole.project_id == project_id)
            .where(cast(Any, ProjectRole.is_filled).is_(False))
        )
        unfilled = int(self.session.exec(cast(Any, statement)).one())
        return unfilled == 0

    def load_next_phase_tasks(self, project_id: int) -> bool:
        task = cast(Any, ProjectTask)
        current_phase = self.session.exec(
            select(func.max(task.phase_order))
            .where(task.project_id == project_id)
            .where(task.is_loaded.is_(True))
            .where(task.is_archived.is_(False))
        ).one()

        next_phase_statement = (
            select(func.min(task.phase_order))
            .where(task.project_id == project_id)
            .where(task.is_loaded.is_(False))
            .where(task.is_archived.is_(False))
        )
        if current_phase is not None:
            next_phase_statement = next_phase_statement.where(task.phase_order > current_phase)
        next_phase = self.session.exec(next_phase_statement).one()
        if next_phase is None:
            logger.info("procedure.no_further_phase", project_id=project_id)
            return False

        loaded_ids = list(
            self.session.exec(
                select(task.id)
                .where(task.project_id == project_id)
                .where(task.phase_order == next_phase)
                .where(task.is_loaded.is_(False))
                .where(task.is_archived.is_(False))
            ).all()
        )
        self.session.exec(
            cast(
                Any,
                update(ProjectTask)
                .where(task.id.in_(loaded_ids))
                .values(is_loaded=True, updated_by=SYSTEM_ACTOR, updated_at=utc_now())
                .execution_options(synchronize_session=False),
            )
        )
        auto_assigned = self._assign_role_holders(project_id=project_id, task_ids=loaded_ids)
        self.session.flush()
        logger.info(
            "procedure.phase_loaded",
            project_id=project_id,
            phase_order=next_phase,
            task_count=len(loaded_ids),
            auto_assigned=auto_assigned,
        )
        return True

    def _assign_role_holders(self, *, project_id: int, task_ids: list[int]) -> int:
        if not task_ids:
            return 0
        task = cast(Any, ProjectTask)
        rows = self.session.exec(
            select(task.id, ProjectCrewAssignment.project_role_id, ProjectCrewAssignment.crew_id)
            .join(
                ProjectCrewAssignment,
                cast(Any, ProjectCrewAssignment.project_role_id == task.assigned_role_id),
            )
            .where(task.id.in_(task_ids))
            .where(~exists().where(ProjectTaskAssignment.task_id == task.id))
            .where(ProjectCrewAssignment.project_id == project_id)
            .order_by(task.id.asc(), cast(Any, ProjectCrewAssignment.id).asc())
        ).all()
        assigned_pairs: set[tuple[int, int]] = set()
        for task_id, role_id, crew_id in rows:
            if (task_id, crew_id) in assigned_pairs:
                continue
            assigned_pairs.add((task_id, crew_id))
            self.session.add(
                ProjectTaskAssignment(
                    task_id=task_id,
                    project_role_id=role_id,
                    crew_id=crew_id,
                    assigned_by=SYSTEM_ACTOR,
                )
            )
        return len(assigned_pairs)

    def escalate_overdue_tasks(self, now: datetime | None = None) -> int:
        moment = now or utc_now()
        task = cast(Any, ProjectTask)
        statement = (
            update(ProjectTask)
            .where(task.status.in_([status.value for status in OVERDUE_ELIGIBLE_STATUSES]))
            .where(task.deadline.is_not(None))
            .where(task.deadline < moment)
            .where(task.is_archived.is_(False))
            .values(
                status=TaskStatus.ESCALATED.value,
                escalation_reason=OVERDUE_ESCALATION_REASON,
                escalated_at=moment,
                started_at=func.coalesce(task.started_at, moment),
                is_manually_escalated=False,
                updated_by=SYSTEM_ACTOR,
                updated_at=moment,
                version=task.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(cast(Any, statement))
        return int(result.rowcount or 0)
