from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from crewtrack.api.deps import ProgressionDep

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


class DashboardRead(BaseModel):
    total_projects: int
    projects_by_status: dict[str, int]
    total_tasks: int
    tasks_by_status: dict[str, int]
    overdue_tasks: int
    completion_percentage: float


@router.get("", response_model=DashboardRead)
def get_dashboard(progression: ProgressionDep) -> DashboardRead:
    summary = progression.get_dashboard_summary()
    return DashboardRead(
        total_projects=summary.total_projects,
        projects_by_status=summary.projects_by_status,
        total_tasks=summary.total_tasks,
        tasks_by_status=summary.tasks_by_status,
        overdue_tasks=summary.overdue_tasks,
        completion_percentage=summary.completion_percentage,
    )
