from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, cast

from sqlalchemy import delete, func
from sqlmodel import Session, select

from crewtrack.db.models import (
    Crew,
    ProjectCrewAssignment,
    ProjectRole,
    ProjectTask,
    ProjectTaskAssignment,
)


def task_lock_statement(task_id: int) -> Any:
    return select(ProjectTask.id).where(ProjectTask.id == task_id).with_for_update()


@dataclass(frozen=True, slots=True)
class TaskAssignmentDetail:
    assignment_id: int
    task_id: int
    crew_id: int
    crew_name: str
    crew_email: str
    project_role_id: int
    role_name: str
    department_name: str


class AssignmentRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def find(self, *, task_id: int, crew_id: int) -> ProjectTaskAssignment | None:
        statement = (
            select(ProjectTaskAssignment)
            .where(ProjectTaskAssignment.task_id == task_id)
            .where(ProjectTaskAssignment.crew_id == crew_id)
        )
        return self.session.exec(statement).first()

    def count_for_task(self, task_id: int) -> int:
        statement = select(func.count()).where(ProjectTaskAssignment.task_id == task_id)
        return int(self.session.exec(cast(Any, statement)).one())

    def standing_role_id(self, *, project_id: int, crew_id: int) -> int | None:
        statement = (
            select(ProjectCrewAssignment.project_role_id)
            .where(ProjectCrewAssignment.project_id == project_id)
            .where(ProjectCrewAssignment.crew_id == crew_id)
            .order_by(cast(Any, ProjectCrewAssignment.id).asc())
        )
        return self.session.exec(statement).first()

    def first_project_role_id(self, project_id: int) -> int | None:
        statement = (
            select(ProjectRole.id)
            .where(ProjectRole.project_id == project_id)
            .order_by(cast(Any, ProjectRole.id).asc())
        )
        return self.session.exec(statement).first()

    def add(self, assignment: ProjectTaskAssignment) -> None:
        self.session.add(assignment)

    def add_many(self, assignments: Sequence[ProjectTaskAssignment]) -> None:
        self.session.add_all(list(assignments))

    def lock_task(self, task_id: int) -> None:
        self.session.exec(task_lock_statement(task_id)).first()

    def delete_unless_last(self, *, task_id: int, crew_id: int) -> bool:
        """
        Delete the (task, crew) assignment only while the task keeps another assignee.

        The "more than one assignment" condition is part of the DELETE itself. The
        parent task row is locked first (SELECT ... FOR UPDATE) so that on servers
        with row locks two removals for the same task run one after the other and
        the second sees the first one's delete. SQLite ignores the lock clause and
        serializes writers at the database level instead.
        """
        self.lock_task(task_id)
        assignment = cast(Any, ProjectTaskAssignment)
        sibling = cast(Any, ProjectTaskAssignment.__table__.alias("sibling"))
        remaining = (
            select(func.count())
            .select_from(sibling)
            .where(sibling.c.task_id == task_id)
            .scalar_subquery()
        )
        statement = (
            delete(ProjectTaskAssignment)
            .where(assignment.task_id == task_id)
            .where(assignment.crew_id == crew_id)
            .where(remaining > 1)
            .execution_options(synchronize_session=False)
        )
        result = self.session.exec(cast(Any, statement))
        return bool(result.rowcount == 1)

    def list_details(self, task_id: int) -> list[TaskAssignmentDetail]:
        statement = (
            select(ProjectTaskAssignment, Crew, ProjectRole)
            .join(Crew, cast(Any, Crew.id == ProjectTaskAssignment.crew_id))
            .join(ProjectRole, cast(Any, ProjectRole.id == ProjectTaskAssignment.project_role_id))
            .where(ProjectTaskAssignment.task_id == task_id)
            .order_by(cast(Any, ProjectTaskAssignment.id).asc())
        )
        details: list[TaskAssignmentDetail] = []
        for assignment, crew, role in self.session.exec(statement).all():
            if assignment.id is None or crew.id is None or role.id is None:
                continue
            details.append(
                TaskAssignmentDetail(
                    assignment_id=assignment.id,
                    task_id=assignment.task_id,
                    crew_id=crew.id,
                    crew_name=crew.name,
                    crew_email=crew.email,
                    project_role_id=role.id,
                    role_name=role.role_name,
                    department_name=role.department_name,
                )
            )
        return details
