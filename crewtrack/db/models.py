from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlmodel import Field, SQLModel

from crewtrack.db.enums import ProjectStatus, TaskCategory, TaskStatus


def utc_now() -> datetime:
    return datetime.now(UTC)


class Project(SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint("version >= 1", name="ck_projects_version_positive"),
        Index("ix_projects_status_archived", "status", "is_archived"),
    )

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(length=200), nullable=False, index=True))
    description: str | None = Field(default=None, sa_column=Column(Text(), nullable=True))
    status: ProjectStatus = Field(
        default=ProjectStatus.DRAFT,
        sa_column=Column(String(length=32), nullable=False, index=True),
    )
    template_snapshot: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON(), nullable=False),
    )
    is_archived: bool = Field(default=False, nullable=False)
    created_by: str = Field(sa_column=Column(String(length=255), nullable=False))
    updated_by: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)
    version: int = Field(default=1, nullable=False)


class Crew(SQLModel, table=True):
    __tablename__ = "crew"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(length=200), nullable=False, index=True))
    email: str = Field(sa_column=Column(String(length=255), nullable=False, unique=True))
    is_archived: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)


class ProjectRole(SQLModel, table=True):
    __tablename__ = "project_roles"
    __table_args__ = (
        UniqueConstraint("project_id", "role_name", name="uq_project_roles_project_role_name"),
    )

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", nullable=False, index=True)
    role_name: str = Field(sa_column=Column(String(length=200), nullable=False))
    department_name: str = Field(sa_column=Column(String(length=200), nullable=False))
    is_filled: bool = Field(default=False, nullable=False, index=True)
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)


class ProjectCrewAssignment(SQLModel, table=True):
    __tablename__ = "project_crew_assignments"
    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "project_role_id",
            "crew_id",
            name="uq_project_crew_assignments_project_role_crew",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", nullable=False, index=True)
    project_role_id: int = Field(foreign_key="project_roles.id", nullable=False, index=True)
    crew_id: int = Field(foreign_key="crew.id", nullable=False, index=True)
    assigned_by: str = Field(sa_column=Column(String(length=255), nullable=False))
    assigned_at: datetime = Field(default_factory=utc_now, nullable=False)


class ProjectTask(SQLModel, table=True):
    __tablename__ = "project_tasks"
    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "phase_order",
            "step_order",
            "task_order",
            name="uq_project_tasks_project_phase_step_order",
        ),
        CheckConstraint("version >= 1", name="ck_project_tasks_version_positive"),
        CheckConstraint(
            "status = 'pending' OR started_at IS NOT NULL",
            name="ck_project_tasks_started_requires_started_at",
        ),
        CheckConstraint(
            "completed_at IS NULL OR started_at IS NOT NULL",
            name="ck_project_tasks_completed_requires_started_at",
        ),
        CheckConstraint(
            "escalated_at IS NULL OR status = 'escalated'",
            name="ck_project_tasks_escalated_at_status_match",
        ),
        CheckConstraint(
            "status <> 'escalated' OR escalated_at IS NOT NULL",
            name="ck_project_tasks_escalated_requires_escalated_at",
        ),
        CheckConstraint(
            "status <> 'completed' OR completed_at IS NOT NULL",
            name="ck_project_tasks_completed_requires_completed_at",
        ),
        Index(
            "ix_project_tasks_project_ordering",
            "project_id",
            "phase_order",
            "step_order",
            "task_order",
        ),
        Index("ix_project_tasks_project_loaded", "project_id", "is_loaded", "is_archived"),
    )

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", nullable=False, index=True)
    name: str = Field(sa_column=Column(String(length=200), nullable=False, index=True))
    description: str | None = Field(default=None, sa_column=Column(Text(), nullable=True))
    phase_name: str = Field(sa_column=Column(String(length=200), nullable=False))
    phase_order: int = Field(nullable=False)
    step_name: str = Field(sa_column=Column(String(length=200), nullable=False))
    step_order: int = Field(nullable=False)
    task_order: int = Field(nullable=False)
    status: TaskStatus = Field(
        default=TaskStatus.PENDING,
        sa_column=Column(String(length=32), nullable=False, index=True),
    )
    category: TaskCategory | None = Field(
        default=None,
        sa_column=Column(String(length=32), nullable=True, index=True),
    )
    parent_task_id: int | None = Field(default=None, foreign_key="project_tasks.id", index=True)
    assigned_role_id: int | None = Field(default=None, foreign_key="project_roles.id")
    checklist_items: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON(), nullable=False),
    )
    comments: list[dict[str, Any]] = Field(
        default_factory=list,
        sa_column=Column(JSON(), nullable=False),
    )
    escalation_reason: str | None = Field(default=None, sa_column=Column(Text(), nullable=True))
    escalated_at: datetime | None = Field(default=None, nullable=True)
    is_manually_escalated: bool = Field(default=False, nullable=False)
    started_at: datetime | None = Field(default=None, nullable=True)
    completed_at: datetime | None = Field(default=None, nullable=True)
    deadline: datetime | None = Field(default=None, nullable=True, index=True)
    is_loaded: bool = Field(default=False, nullable=False)
    is_custom: bool = Field(default=False, nullable=False)
    is_archived: bool = Field(default=False, nullable=False)
    created_by: str = Field(sa_column=Column(String(length=255), nullable=False))
    updated_by: str | None = Field(default=None, sa_column=Column(String(length=255), nullable=True))
    created_at: datetime = Field(default_factory=utc_now, nullable=False)
    updated_at: datetime = Field(default_factory=utc_now, nullable=False)
    version: int = Field(default=1, nullable=False)


class ProjectTaskAssignment(SQLModel, table=True):
    __tablename__ = "project_task_assignments"
    __table_args__ = (
        UniqueConstraint("task_id", "crew_id", name="uq_project_task_assignments_task_crew"),
    )

    id: int | None = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="project_tasks.id", nullable=False, index=True)
    project_role_id: int = Field(foreign_key="project_roles.id", nullable=False, index=True)
    crew_id: int = Field(foreign_key="crew.id", nullable=False, index=True)
    assigned_by: str = Field(sa_column=Column(String(length=255), nullable=False))
    assigned_at: datetime = Field(default_factory=utc_now, nullable=False)
