from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, cast

from sqlalchemy import ColumnElement, exists, func, or_, update
from sqlmodel import Session, select

from crewtrack.db.enums import OVERDUE_ELIGIBLE_STATUSES, TaskCategory, TaskStatus
from crewtrack.db.models import Project, ProjectTask, ProjectTaskAssignment, utc_now
from crewtrack.db.repositories.common import Page, Pagination, paginate

LIKE_ESCAPE_CHAR = "\\"


@dataclass(frozen=True, slots=True)
class TaskFilters:
    project_id: int | None
    statuses: frozenset[TaskStatus] | None = None
    phase_order: int | None = None
    step_order: int | None = None
    categories: frozenset[TaskCategory] | None = None
    is_loaded: bool | None = True
    is_custom: bool | None = None
    search: str | None = None
    assigned_crew_id: int | None = None
    deadline_before: datetime | None = None


def overdue_filters(now: datetime, project_id: int | None = None) -> TaskFilters:
    """Pending or ongoing tasks whose deadline passed before now, loaded or not."""
    return TaskFilters(
        project_id=project_id,
        statuses=frozenset(OVERDUE_ELIGIBLE_STATUSES),
        is_loaded=None,
        deadline_before=now,
    )


def escape_like(value: str) -> str:
    return (
        value.replace(LIKE_ESCAPE_CHAR, LIKE_ESCAPE_CHAR * 2)
        .replace("%", f"{LIKE_ESCAPE_CHAR}%")
        .replace("_", f"{LIKE_ESCAPE_CHAR}_")
    )


def build_task_predicates(filters: TaskFilters) -> list[ColumnElement[bool]]:
    """
    Predicate set shared by every listing, count and page of tasks.

    A filter without project_id spans every project that is not archived.
    """
    task = cast(Any, ProjectTask)
    predicates: list[ColumnElement[bool]] = [task.is_archived.is_(False)]
    if filters.project_id is not None:
        predicates.append(task.project_id == filters.project_id)
    else:
        live_projects = select(Project.id).where(cast(Any, Project.is_archived).is_(False))
        predicates.append(task.project_id.in_(live_projects))
    if filters.statuses:
        predicates.append(task.status.in_(sorted(status.value for status in filters.statuses)))
    if filters.phase_order is not None:
        predicates.append(task.phase_order == filters.phase_order)
    if filters.step_order is not None:
        predicates.append(task.step_order == filters.step_order)
    if filters.categories:
        predicates.append(
            task.category.in_(sorted(category.value for category in filters.categories))
        )
    if filters.is_loaded is not None:
        predicates.append(task.is_loaded.is_(filters.is_loaded))
    if filters.is_custom is not None:
        predicates.append(task.is_custom.is_(filters.is_custom))
    search = (filters.search or "").strip()
    if search:
        pattern = f"%{escape_like(search)}%"
        predicates.append(
            or_(
                task.name.ilike(pattern, escape=LIKE_ESCAPE_CHAR),
                task.description.ilike(pattern, escape=LIKE_ESCAPE_CHAR),
            )
        )
    if filters.deadline_before is not None:
        predicates.append(task.deadline.is_not(None))
        predicates.append(task.deadline < filters.deadline_before)
    if filters.assigned_crew_id is not None:
        assignment = cast(Any, ProjectTaskAssignment)
        predicates.append(
            exists()
            .where(assignment.task_id == task.id)
            .where(assignment.crew_id == filters.assigned_crew_id)
        )
    return predicates


def task_ordering() -> tuple[Any, ...]:
    task = cast(Any, ProjectTask)
    return (
        task.phase_order.asc(),
        task.step_order.asc(),
        task.task_order.asc(),
        task.id.asc(),
    )


def deadline_ordering() -> tuple[Any, ...]:
    task = cast(Any, ProjectTask)
    return (task.deadline.asc(), task.project_id.asc(), *task_ordering())


class TaskRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, task: ProjectTask) -> ProjectTask:
        self.session.add(task)
        self.session.commit()
        self.session.refresh(task)
        return task

    def get(self, task_id: int) -> ProjectTask | None:
        return self.session.get(ProjectTask, task_id)

    def get_active(self, task_id: int) -> ProjectTask | None:
        task = self.get(task_id)
        if task is None or task.is_archived:
            return None
        return task

    def list_all(self, filters: TaskFilters) -> Sequence[ProjectTask]:
        statement = select(ProjectTask).where(*build_task_predicates(filters)).order_by(
            *task_ordering()
        )
        return list(self.session.exec(statement).all())

    def list(self, filters: TaskFilters, *, pagination: Pagination | None = None) -> Page[ProjectTask]:
        statement = select(ProjectTask).where(*build_task_predicates(filters)).order_by(
            *task_ordering()
        )
        return paginate(self.session, statement, pagination=pagination or Pagination())

    def count(self, filters: TaskFilters) -> int:
        statement = select(func.count()).select_from(ProjectTask).where(
            *build_task_predicates(filters)
        )
        return int(self.session.exec(cast(Any, statement)).one())

    def list_by_deadline(self, filters: TaskFilters) -> Sequence[ProjectTask]:
        statement = select(ProjectTask).where(*build_task_predicates(filters)).order_by(
            *deadline_ordering()
        )
        return list(self.session.exec(statement).all())

    def max_loaded_task_order(self, project_id: int) -> int | None:
        task = cast(Any, ProjectTask)
        statement = (
            select(func.max(task.task_order))
            .where(task.project_id == project_id)
            .where(task.is_loaded.is_(True))
            .where(task.is_archived.is_(False))
        )
        return self.session.exec(statement).one()

    def apply_status_values(
        self,
        *,
        task_id: int,
        values: dict[str, Any],
        updated_by: str,
        now: datetime | None = None,
    ) -> bool:
        """Single-statement status write; SQL expressions in values are evaluated at commit."""
        return self.apply_values(task_id=task_id, values=values, updated_by=updated_by, now=now)

    def apply_values(
        self,
        *,
        task_id: int,
        values: dict[str, Any],
        updated_by: str,
        now: datetime | None = None,
        expected_version: int | None = None,
    ) -> bool:
        """Guarded UPDATE of one live task; False when no row matched."""
        task = cast(Any, ProjectTask)
        statement = (
            update(ProjectTask)
            .where(task.id == task_id)
            .where(task.is_archived.is_(False))
        )
        if expected_version is not None:
            statement = statement.where(task.version == expected_version)
        statement = statement.values(
            **values,
            updated_by=updated_by,
            updated_at=now or utc_now(),
            version=task.version + 1,
        ).execution_options(synchronize_session=False)
        result = self.session.exec(cast(Any, statement))
        return bool(result.rowcount == 1)
