from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from sqlmodel import Session

from crewtrack.core.logging import get_logger
from crewtrack.db.models import Crew, ProjectRole, ProjectTask, ProjectTaskAssignment
from crewtrack.db.repositories.assignment_repository import (
    AssignmentRepository,
    TaskAssignmentDetail,
)
from crewtrack.orchestration.errors import (
    ConflictError,
    LastAssigneeViolation,
    NoAvailableRole,
    NotFoundError,
    ValidationError,
    store_errors,
)

logger = get_logger("crewtrack.orchestration.assignment")


@dataclass(frozen=True, slots=True)
class CrewRolePair:
    crew_id: int
    role_id: int


class CrewAssignmentGuard:
    def __init__(self, session: Session) -> None:
        self.session = session
        self.assignments = AssignmentRepository(session)

    def _require_task(self, task_id: int, *, operation: str) -> ProjectTask:
        task = self.session.get(ProjectTask, task_id)
        if task is None or task.is_archived:
            raise NotFoundError(
                f"Task {task_id} does not exist or is archived.",
                operation=operation,
                context={"task_id": task_id},
            )
        return task

    def _require_crew(self, crew_id: int, *, operation: str, task_id: int) -> None:
        crew = self.session.get(Crew, crew_id)
        if crew is None or crew.is_archived:
            raise NotFoundError(
                f"Crew {crew_id} does not exist or is archived.",
                operation=operation,
                context={"task_id": task_id, "crew_id": crew_id},
            )

    def _require_project_role(
        self,
        role_id: int,
        *,
        project_id: int,
        operation: str,
        task_id: int,
    ) -> None:
        role = self.session.get(ProjectRole, role_id)
        if role is None or role.project_id != project_id:
            raise ValidationError(
                f"Role {role_id} does not belong to project {project_id}.",
                operation=operation,
                context={"task_id": task_id, "role_id": role_id},
            )

    def resolve_role(self, *, project_id: int, crew_id: int, task_id: int) -> int:
        """Standing project role of the crew first, else the project's lowest-id role."""
        role_id = self.assignments.standing_role_id(project_id=project_id, crew_id=crew_id)
        if role_id is not None:
            return role_id
        role_id = self.assignments.first_project_role_id(project_id)
        if role_id is None:
            raise NoAvailableRole(
                f"Project {project_id} has no roles to staff task {task_id} against.",
                operation="assignment.assign",
                context={"task_id": task_id, "project_id": project_id, "crew_id": crew_id},
            )
        return role_id

    def assign(
        self,
        task_id: int,
        crew_id: int,
        assigned_by: str,
        *,
        role_id: int | None = None,
    ) -> bool:
        """
        Attach crew to a task. Re-assigning an already assigned crew is a no-op.

        Args:
            task_id: Target task.
            crew_id: Crew member to attach.
            assigned_by: Recorded on the assignment row.
            role_id: Explicit project role; resolved automatically when omitted.

        Returns:
            bool: True once the crew is assigned.

        Raises:
            NotFoundError: If the task or crew does not exist.
            ValidationError: If role_id belongs to another project.
            NoAvailableRole: If no role can be resolved.
        """
        operation = "assignment.assign"
        task = self._require_task(task_id, operation=operation)
        if self.assignments.find(task_id=task_id, crew_id=crew_id) is not None:
            logger.debug("assignment.already_present", task_id=task_id, crew_id=crew_id)
            return True

        self._require_crew(crew_id, operation=operation, task_id=task_id)
        if role_id is not None:
            self._require_project_role(
                role_id, project_id=task.project_id, operation=operation, task_id=task_id
            )
            resolved_role_id = role_id
        else:
            resolved_role_id = self.resolve_role(
                project_id=task.project_id, crew_id=crew_id, task_id=task_id
            )

        self.assignments.add(
            ProjectTaskAssignment(
                task_id=task_id,
                project_role_id=resolved_role_id,
                crew_id=crew_id,
                assigned_by=assigned_by,
            )
        )
        try:
            with store_errors(self.session, operation, task_id=task_id, crew_id=crew_id):
                self.session.commit()
        except ConflictError:
            # A concurrent assign of the same pair won; the pair exists either way.
            if self.assignments.find(task_id=task_id, crew_id=crew_id) is not None:
                return True
            raise
        logger.info(
            "assignment.created",
            task_id=task_id,
            crew_id=crew_id,
            role_id=resolved_role_id,
            auto_resolved=role_id is None,
        )
        return True

    def remove(self, task_id: int, crew_id: int) -> bool:
        operation = "assignment.remove"
        context = {"task_id": task_id, "crew_id": crew_id}
        self._require_task(task_id, operation=operation)
        with store_errors(self.session, operation, **context):
            deleted = self.assignments.delete_unless_last(task_id=task_id, crew_id=crew_id)
            if deleted:
                self.session.commit()
            else:
                self.session.rollback()

        if deleted:
            logger.info("assignment.removed", **context)
            return True

        if self.assignments.count_for_task(task_id) <= 1:
            logger.warning("assignment.last_assignee_protected", **context)
            raise LastAssigneeViolation(
                "Cannot remove the last assigned crew member from a task.",
                operation=operation,
                context=context,
            )
        raise NotFoundError(
            f"Crew {crew_id} is not assigned to task {task_id}.",
            operation=operation,
            context=context,
        )

    def assign_many(
        self,
        task_id: int,
        pairs: Sequence[CrewRolePair],
        assigned_by: str,
    ) -> list[ProjectTaskAssignment]:
        """Insert explicit (crew, role) pairs in one transaction; duplicates fail the batch."""
        operation = "assignment.assign_many"
        task = self._require_task(task_id, operation=operation)
        for pair in pairs:
            self._require_project_role(
                pair.role_id, project_id=task.project_id, operation=operation, task_id=task_id
            )

        rows = [
            ProjectTaskAssignment(
                task_id=task_id,
                project_role_id=pair.role_id,
                crew_id=pair.crew_id,
                assigned_by=assigned_by,
            )
            for pair in pairs
        ]
        with store_errors(self.session, operation, task_id=task_id):
            self.assignments.add_many(rows)
            self.session.commit()
        for row in rows:
            self.session.refresh(row)
        logger.info("assignment.batch_created", task_id=task_id, count=len(rows))
        return rows

    def list_assignments(self, task_id: int) -> list[TaskAssignmentDetail]:
        self._require_task(task_id, operation="assignment.list")
        return self.assignments.list_details(task_id)
