from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlmodel import Session

from crewtrack.db.models import ProjectTask, utc_now
from crewtrack.db.repositories.common import Pagination
from crewtrack.db.repositories.task_repository import TaskFilters, TaskRepository, overdue_filters
from crewtrack.orchestration.errors import NotFoundError, ValidationError, store_errors


@dataclass(frozen=True, slots=True)
class TaskPage:
    items: list[ProjectTask]
    total_count: int
    page: int
    page_size: int

    @property
    def has_next_page(self) -> bool:
        return self.page * self.page_size < self.total_count


class TaskQueryEngine:
    """Read side of project tasks; count and slice always share one predicate set."""

    def __init__(self, session: Session, *, max_page_size: int | None = None) -> None:
        self.session = session
        self.tasks = TaskRepository(session)
        self.max_page_size = max_page_size

    def list_tasks(self, filters: TaskFilters) -> list[ProjectTask]:
        with store_errors(self.session, "task.list", project_id=filters.project_id):
            return list(self.tasks.list_all(filters))

    def paginate(self, filters: TaskFilters, page: int = 1, page_size: int = 20) -> TaskPage:
        operation = "task.paginate"
        if self.max_page_size is not None and page_size > self.max_page_size:
            raise ValidationError(
                f"page_size must be <= {self.max_page_size}",
                operation=operation,
                context={"project_id": filters.project_id},
            )
        try:
            pagination = Pagination(page=page, page_size=page_size)
        except ValueError as exc:
            raise ValidationError(
                str(exc), operation=operation, context={"project_id": filters.project_id}
            ) from exc

        with store_errors(self.session, operation, project_id=filters.project_id):
            result = self.tasks.list(filters, pagination=pagination)
        return TaskPage(
            items=list(result.items),
            total_count=result.total,
            page=result.page,
            page_size=result.page_size,
        )

    def list_overdue_tasks(
        self, *, now: datetime | None = None, project_id: int | None = None
    ) -> list[ProjectTask]:
        """Open tasks past their deadline, earliest deadline first, across projects by default."""
        filters = overdue_filters(now or utc_now(), project_id=project_id)
        with store_errors(self.session, "task.list_overdue", project_id=project_id):
            return list(self.tasks.list_by_deadline(filters))

    def get_task(self, task_id: int) -> ProjectTask:
        task = self.tasks.get_active(task_id)
        if task is None:
            raise NotFoundError(
                f"Task {task_id} does not exist or is archived.",
                operation="task.get",
                context={"task_id": task_id},
            )
        return task
