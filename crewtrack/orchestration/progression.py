from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, cast

from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlmodel import Session, select

from crewtrack.core.logging import get_logger
from crewtrack.db.enums import ProjectStatus, TaskCategory, TaskStatus
from crewtrack.db.models import Project, ProjectRole, ProjectTask, utc_now
from crewtrack.db.procedures import (
    ChecklistItem,
    ProcedureError,
    ProjectFields,
    SqlStoreProcedures,
    StoreProcedures,
    TemplateSnapshot,
)
from crewtrack.db.repositories.task_repository import TaskFilters, TaskRepository, overdue_filters
from crewtrack.orchestration.assignment import CrewAssignmentGuard
from crewtrack.orchestration.errors import (
    CrewTrackError,
    NoAnchorTask,
    NotFoundError,
    PartialFailure,
    PhaseIncomplete,
    RoleCoverageIncomplete,
    TaskLoadFailure,
    ValidationError,
    store_errors,
)

logger = get_logger("crewtrack.orchestration.progression")


@dataclass(frozen=True, slots=True)
class PhaseProgress:
    phase_name: str
    phase_order: int
    total: int = 0
    completed: int = 0
    ongoing: int = 0
    pending: int = 0
    escalated: int = 0


@dataclass(frozen=True, slots=True)
class ProjectSummary:
    project_id: int
    name: str
    status: ProjectStatus
    loaded_tasks: int
    completed: int
    ongoing: int
    pending: int
    escalated: int
    total_roles: int
    filled_roles: int

    @property
    def completion_percentage(self) -> float:
        if self.loaded_tasks == 0:
            return 0.0
        return round(self.completed * 100 / self.loaded_tasks, 2)


@dataclass(frozen=True, slots=True)
class DashboardSummary:
    """Counts across every project that is not archived."""

    projects_by_status: dict[str, int]
    tasks_by_status: dict[str, int]
    overdue_tasks: int

    @property
    def total_projects(self) -> int:
        return sum(self.projects_by_status.values())

    @property
    def total_tasks(self) -> int:
        return sum(self.tasks_by_status.values())

    @property
    def completion_percentage(self) -> float:
        if self.total_tasks == 0:
            return 0.0
        completed = self.tasks_by_status.get(TaskStatus.COMPLETED.value, 0)
        return round(completed * 100 / self.total_tasks, 2)


class CustomTaskInput(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    category: TaskCategory | None = None
    deadline: datetime | None = None
    parent_task_id: int | None = None
    checklist_items: list[ChecklistItem] = Field(default_factory=list)


def tally_phases(rows: Sequence[tuple[int, str, str, int]]) -> list[PhaseProgress]:
    """Fold (phase_order, phase_name, status, count) rows into per-phase totals."""
    grouped: dict[tuple[int, str], dict[str, int]] = {}
    for phase_order, phase_name, status, count in rows:
        bucket = grouped.setdefault((phase_order, phase_name), {})
        bucket[status] = bucket.get(status, 0) + int(count)

    progress: list[PhaseProgress] = []
    for (phase_order, phase_name), counts in sorted(grouped.items(), key=lambda item: item[0]):
        progress.append(
            PhaseProgress(
                phase_name=phase_name,
                phase_order=phase_order,
                total=sum(counts.values()),
                completed=counts.get(TaskStatus.COMPLETED.value, 0),
                ongoing=counts.get(TaskStatus.ONGOING.value, 0),
                pending=counts.get(TaskStatus.PENDING.value, 0),
                escalated=counts.get(TaskStatus.ESCALATED.value, 0),
            )
        )
    return progress


class PhaseProgressionAggregator:
    def __init__(
        self,
        session: Session,
        *,
        procedures: StoreProcedures | None = None,
    ) -> None:
        self.session = session
        self.procedures: StoreProcedures = procedures or SqlStoreProcedures(session)
        self.tasks = TaskRepository(session)

    def _require_project(self, project_id: int, *, operation: str) -> Project:
        project = self.session.get(Project, project_id)
        if project is None or project.is_archived:
            raise NotFoundError(
                f"Project {project_id} does not exist or is archived.",
                operation=operation,
                context={"project_id": project_id},
            )
        return project

    def _has_loaded_tasks(self, project_id: int) -> bool:
        task = cast(Any, ProjectTask)
        statement = (
            select(func.count())
            .where(task.project_id == project_id)
            .where(task.is_loaded.is_(True))
            .where(task.is_archived.is_(False))
        )
        return int(self.session.exec(cast(Any, statement)).one()) > 0

    def create_project(
        self,
        template: TemplateSnapshot,
        fields: ProjectFields,
        created_by: str,
    ) -> Project:
        operation = "project.create"
        with store_errors(self.session, operation):
            project_id = self.procedures.create_project_from_template(template, fields, created_by)
            self.session.commit()
        project = self._require_project(project_id, operation=operation)
        self.session.refresh(project)
        logger.info("project.created", project_id=project_id, actor=created_by)
        return project

    def assign_crew_to_role(
        self,
        project_id: int,
        role_id: int,
        crew_id: int,
        assigned_by: str,
    ) -> bool:
        operation = "project.assign_role"
        context = {"project_id": project_id, "role_id": role_id, "crew_id": crew_id}
        self._require_project(project_id, operation=operation)
        with store_errors(self.session, operation, **context):
            try:
                self.procedures.assign_crew_to_project_role(
                    project_id, role_id, crew_id, assigned_by
                )
            except ProcedureError as exc:
                self.session.rollback()
                raise NotFoundError(str(exc), operation=operation, context=context) from exc
            self.session.commit()
        logger.info("project.role_filled", **context)
        return True

    def compute_phase_progress(self, project_id: int) -> list[PhaseProgress]:
        task = cast(Any, ProjectTask)
        statement = (
            select(task.phase_order, task.phase_name, task.status, func.count())
            .where(task.project_id == project_id)
            .where(task.is_loaded.is_(True))
            .where(task.is_archived.is_(False))
            .group_by(task.phase_order, task.phase_name, task.status)
        )
        rows = [
            (int(phase_order), str(phase_name), str(status), int(count))
            for phase_order, phase_name, status, count in self.session.exec(statement).all()
        ]
        return tally_phases(rows)

    def list_roles(self, project_id: int) -> list[ProjectRole]:
        self._require_project(project_id, operation="project.list_roles")
        statement = (
            select(ProjectRole)
            .where(ProjectRole.project_id == project_id)
            .order_by(cast(Any, ProjectRole.id).asc())
        )
        return list(self.session.exec(statement).all())

    def can_project_start(self, project_id: int) -> bool:
        with store_errors(self.session, "project.can_start", project_id=project_id):
            return bool(self.procedures.can_project_start(project_id))

    def start_project(self, project_id: int) -> bool:
        """
        Gate on role coverage, load the first phase and activate the project.

        All three steps share one transaction. A project that is already
        active with loaded tasks is reported as started without touching it,
        so callers can retry after an ambiguous failure.

        Raises:
            NotFoundError: Unknown or archived project.
            ValidationError: The project is not a draft and has not been started.
            RoleCoverageIncomplete: A project role is still unfilled.
            TaskLoadFailure: No phase could be loaded.
            PersistenceFailure: The store rejected a write; nothing is kept.
        """
        operation = "project.start"
        project = self._require_project(project_id, operation=operation)
        if project.status == ProjectStatus.ACTIVE and self._has_loaded_tasks(project_id):
            logger.info("project.start_skipped", project_id=project_id, reason="already_active")
            return True
        if project.status != ProjectStatus.DRAFT:
            raise ValidationError(
                f"Project {project_id} is {project.status}; only draft projects can start.",
                operation=operation,
                context={"project_id": project_id},
            )

        with store_errors(self.session, operation, project_id=project_id):
            if not self.procedures.can_project_start(project_id):
                self.session.rollback()
                raise RoleCoverageIncomplete(
                    "Every project role must be filled before the project can start.",
                    operation=operation,
                    context={"project_id": project_id},
                )
            if not self._has_loaded_tasks(project_id) and not self.procedures.load_next_phase_tasks(
                project_id
            ):
                self.session.rollback()
                raise TaskLoadFailure(
                    "No phase tasks could be loaded for the project.",
                    operation=operation,
                    context={"project_id": project_id},
                )
            project.status = ProjectStatus.ACTIVE
            project.updated_at = utc_now()
            project.version += 1
            self.session.add(project)
            self.session.commit()
            self.session.expire_all()

        logger.info("project.started", project_id=project_id)
        return True

    def advance_project(self, project_id: int, actor_id: str) -> bool:
        """Load the next phase once the loaded one is done; complete the project when none remains."""
        operation = "project.advance"
        context = {"project_id": project_id}
        project = self._require_project(project_id, operation=operation)
        if project.status != ProjectStatus.ACTIVE:
            raise ValidationError(
                f"Project {project_id} is {project.status} and cannot advance.",
                operation=operation,
                context=context,
            )
        task = cast(Any, ProjectTask)
        open_statement = (
            select(func.count())
            .where(task.project_id == project_id)
            .where(task.is_loaded.is_(True))
            .where(task.is_archived.is_(False))
            .where(task.status != TaskStatus.COMPLETED.value)
        )
        open_tasks = int(self.session.exec(cast(Any, open_statement)).one())
        if open_tasks:
            raise PhaseIncomplete(
                f"{open_tasks} loaded task(s) are not completed yet.",
                operation=operation,
                context=context,
            )

        with store_errors(self.session, operation, **context):
            loaded = self.procedures.load_next_phase_tasks(project_id)
            if not loaded:
                project.status = ProjectStatus.COMPLETED
            project.updated_by = actor_id
            project.updated_at = utc_now()
            project.version += 1
            self.session.add(project)
            self.session.commit()
            self.session.expire_all()

        if loaded:
            logger.info("project.phase_advanced", project_id=project_id, actor=actor_id)
        else:
            logger.info("project.completed", project_id=project_id, actor=actor_id)
        return loaded

    def create_custom_task(
        self,
        project_id: int,
        payload: CustomTaskInput,
        created_by: str,
        *,
        crew_ids: Sequence[int] = (),
    ) -> ProjectTask:
        """
        Append an ad hoc task to the step of the last loaded task.

        The task commits first. Crew listed in crew_ids are then assigned one by
        one; if any assignment fails the task is kept and PartialFailure carries it.
        """
        operation = "task.create_custom"
        context = {"project_id": project_id}
        self._require_project(project_id, operation=operation)

        loaded = self.tasks.list_all(TaskFilters(project_id=project_id, is_loaded=True))
        if not loaded:
            raise NoAnchorTask(
                "A custom task needs at least one loaded task to anchor its phase and step.",
                operation=operation,
                context=context,
            )
        anchor = loaded[-1]
        max_order = self.tasks.max_loaded_task_order(project_id)
        if payload.parent_task_id is not None:
            parent = self.tasks.get_active(payload.parent_task_id)
            if parent is None or parent.project_id != project_id:
                raise ValidationError(
                    f"Parent task {payload.parent_task_id} is not part of project {project_id}.",
                    operation=operation,
                    context={**context, "parent_task_id": payload.parent_task_id},
                )

        task = ProjectTask(
            project_id=project_id,
            name=payload.name,
            description=payload.description,
            phase_name=anchor.phase_name,
            phase_order=anchor.phase_order,
            step_name=anchor.step_name,
            step_order=anchor.step_order,
            task_order=(max_order or 0) + 1,
            category=payload.category,
            deadline=payload.deadline,
            parent_task_id=payload.parent_task_id,
            checklist_items=[item.model_dump(mode="json") for item in payload.checklist_items],
            is_loaded=True,
            is_custom=True,
            created_by=created_by,
        )
        with store_errors(self.session, operation, **context):
            task = self.tasks.create(task)
        logger.info(
            "task.custom_created",
            task_id=task.id,
            project_id=project_id,
            task_order=task.task_order,
            actor=created_by,
        )

        guard = CrewAssignmentGuard(self.session)
        for crew_id in crew_ids:
            try:
                guard.assign(cast(int, task.id), crew_id, created_by)
            except CrewTrackError as exc:
                logger.warning(
                    "task.custom_assignment_failed",
                    task_id=task.id,
                    project_id=project_id,
                    crew_id=crew_id,
                    error_code=exc.code,
                )
                raise PartialFailure(
                    f"Task {task.id} was created but crew {crew_id} could not be assigned.",
                    committed=task,
                    cause=exc,
                    operation=operation,
                    context={**context, "task_id": task.id, "crew_id": crew_id},
                ) from exc
        return task

    def escalate_overdue_tasks(self, now: datetime | None = None) -> int:
        with store_errors(self.session, "task.escalate_overdue"):
            affected = self.procedures.escalate_overdue_tasks(now)
            self.session.commit()
            self.session.expire_all()
        if affected:
            logger.info("task.overdue_escalated", count=affected)
        return affected

    def get_project_summary(self, project_id: int) -> ProjectSummary:
        project = self._require_project(project_id, operation="project.summary")
        totals: dict[str, int] = {}
        for phase in self.compute_phase_progress(project_id):
            for field_name in ("total", "completed", "ongoing", "pending", "escalated"):
                totals[field_name] = totals.get(field_name, 0) + getattr(phase, field_name)

        role = cast(Any, ProjectRole)
        role_rows = self.session.exec(
            select(role.is_filled, func.count())
            .where(role.project_id == project_id)
            .group_by(role.is_filled)
        ).all()
        role_counts = {bool(is_filled): int(count) for is_filled, count in role_rows}

        return ProjectSummary(
            project_id=project_id,
            name=project.name,
            status=ProjectStatus(project.status),
            loaded_tasks=totals.get("total", 0),
            completed=totals.get("completed", 0),
            ongoing=totals.get("ongoing", 0),
            pending=totals.get("pending", 0),
            escalated=totals.get("escalated", 0),
            total_roles=sum(role_counts.values()),
            filled_roles=role_counts.get(True, 0),
        )

    def get_dashboard_summary(self, now: datetime | None = None) -> DashboardSummary:
        """Project and loaded-task counts by status plus the overdue count at now."""
        project = cast(Any, Project)
        task = cast(Any, ProjectTask)
        with store_errors(self.session, "project.dashboard"):
            project_rows = self.session.exec(
                select(project.status, func.count())
                .where(project.is_archived.is_(False))
                .group_by(project.status)
            ).all()
            task_rows = self.session.exec(
                select(task.status, func.count())
                .join(Project, cast(Any, Project.id == task.project_id))
                .where(project.is_archived.is_(False))
                .where(task.is_archived.is_(False))
                .where(task.is_loaded.is_(True))
                .group_by(task.status)
            ).all()
            overdue = self.tasks.count(overdue_filters(now or utc_now()))

        projects_by_status = {status.value: 0 for status in ProjectStatus}
        projects_by_status.update({str(status): int(count) for status, count in project_rows})
        tasks_by_status = {status.value: 0 for status in TaskStatus}
        tasks_by_status.update({str(status): int(count) for status, count in task_rows})
        return DashboardSummary(
            projects_by_status=projects_by_status,
            tasks_by_status=tasks_by_status,
            overdue_tasks=overdue,
        )
