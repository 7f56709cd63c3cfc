from __future__ import annotations

from typing import Annotated

from fastapi import Depends
from sqlmodel import Session

from crewtrack.core.config import get_settings
from crewtrack.db.session import get_session
from crewtrack.orchestration.assignment import CrewAssignmentGuard
from crewtrack.orchestration.lifecycle import TaskLifecycleManager
from crewtrack.orchestration.progression import PhaseProgressionAggregator
from crewtrack.orchestration.query import TaskQueryEngine

DEFAULT_API_ACTOR = "api"

DbSession = Annotated[Session, Depends(get_session)]


def get_lifecycle_manager(session: DbSession) -> TaskLifecycleManager:
    return TaskLifecycleManager(session)


def get_assignment_guard(session: DbSession) -> CrewAssignmentGuard:
    return CrewAssignmentGuard(session)


def get_progression(session: DbSession) -> PhaseProgressionAggregator:
    return PhaseProgressionAggregator(session)


def get_query_engine(session: DbSession) -> TaskQueryEngine:
    return TaskQueryEngine(session, max_page_size=get_settings().max_page_size)


LifecycleDep = Annotated[TaskLifecycleManager, Depends(get_lifecycle_manager)]
AssignmentDep = Annotated[CrewAssignmentGuard, Depends(get_assignment_guard)]
ProgressionDep = Annotated[PhaseProgressionAggregator, Depends(get_progression)]
QueryDep = Annotated[TaskQueryEngine, Depends(get_query_engine)]
