from crewtrack.db.repositories.assignment_repository import (
    AssignmentRepository,
    TaskAssignmentDetail,
)
from crewtrack.db.repositories.common import Page, Pagination
from crewtrack.db.repositories.task_repository import TaskFilters, TaskRepository

__all__ = [
    "AssignmentRepository",
    "Page",
    "Pagination",
    "TaskAssignmentDetail",
    "TaskFilters",
    "TaskRepository",
]
