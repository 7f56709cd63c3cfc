from crewtrack.orchestration.assignment import CrewAssignmentGuard, CrewRolePair
from crewtrack.orchestration.errors import (
    ConflictError,
    CrewTrackError,
    InvariantViolation,
    LastAssigneeViolation,
    NoAnchorTask,
    NoAvailableRole,
    NotFoundError,
    PartialFailure,
    PersistenceFailure,
    PhaseIncomplete,
    RoleCoverageIncomplete,
    TaskLoadFailure,
    ValidationError,
)
from crewtrack.orchestration.lifecycle import TaskLifecycleManager
from crewtrack.orchestration.progression import (
    CustomTaskInput,
    PhaseProgress,
    PhaseProgressionAggregator,
    ProjectSummary,
)
from crewtrack.orchestration.query import TaskPage, TaskQueryEngine
from crewtrack.orchestration.state_machine import (
    TASK_STATUS_EFFECTS,
    FieldEffect,
    InvalidTaskStatusError,
    StatusEffects,
    parse_task_status,
)

__all__ = [
    "ConflictError",
    "CrewAssignmentGuard",
    "CrewRolePair",
    "CrewTrackError",
    "CustomTaskInput",
    "FieldEffect",
    "InvalidTaskStatusError",
    "InvariantViolation",
    "LastAssigneeViolation",
    "NoAnchorTask",
    "NoAvailableRole",
    "NotFoundError",
    "PartialFailure",
    "PersistenceFailure",
    "PhaseIncomplete",
    "PhaseProgress",
    "PhaseProgressionAggregator",
    "ProjectSummary",
    "RoleCoverageIncomplete",
    "StatusEffects",
    "TASK_STATUS_EFFECTS",
    "TaskLifecycleManager",
    "TaskLoadFailure",
    "TaskPage",
    "TaskQueryEngine",
    "ValidationError",
    "parse_task_status",
]
