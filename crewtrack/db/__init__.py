"""Database layer modules and public helpers."""

from crewtrack.db.enums import ProjectStatus, TaskCategory, TaskStatus
from crewtrack.db.models import (
    Crew,
    Project,
    ProjectCrewAssignment,
    ProjectRole,
    ProjectTask,
    ProjectTaskAssignment,
)
from crewtrack.db.session import get_session, session_scope

__all__ = [
    "Crew",
    "Project",
    "ProjectCrewAssignment",
    "ProjectRole",
    "ProjectStatus",
    "ProjectTask",
    "ProjectTaskAssignment",
    "TaskCategory",
    "TaskStatus",
    "get_session",
    "session_scope",
]
