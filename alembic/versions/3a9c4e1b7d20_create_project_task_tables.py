"""create_project_task_tables

Revision ID: 3a9c4e1b7d20
Revises:
Create Date: 2026-10-12 09:40:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3a9c4e1b7d20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("template_snapshot", sa.JSON(), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("updated_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("version >= 1", name="ck_projects_version_positive"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_projects_name"), "projects", ["name"], unique=False)
    op.create_index(op.f("ix_projects_status"), "projects", ["status"], unique=False)
    op.create_index(
        "ix_projects_status_archived", "projects", ["status", "is_archived"], unique=False
    )

    op.create_table(
        "crew",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(op.f("ix_crew_name"), "crew", ["name"], unique=False)

    op.create_table(
        "project_roles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("role_name", sa.String(length=200), nullable=False),
        sa.Column("department_name", sa.String(length=200), nullable=False),
        sa.Column("is_filled", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "project_id", "role_name", name="uq_project_roles_project_role_name"
        ),
    )
    op.create_index(
        op.f("ix_project_roles_project_id"), "project_roles", ["project_id"], unique=False
    )
    op.create_index(
        op.f("ix_project_roles_is_filled"), "project_roles", ["is_filled"], unique=False
    )

    op.create_table(
        "project_crew_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("project_role_id", sa.Integer(), nullable=False),
        sa.Column("crew_id", sa.Integer(), nullable=False),
        sa.Column("assigned_by", sa.String(length=255), nullable=False),
        sa.Column("assigned_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["crew_id"], ["crew.id"]),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.ForeignKeyConstraint(["project_role_id"], ["project_roles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "project_id",
            "project_role_id",
            "crew_id",
            name="uq_project_crew_assignments_project_role_crew",
        ),
    )
    for column in ("project_id", "project_role_id", "crew_id"):
        op.create_index(
            op.f(f"ix_project_crew_assignments_{column}"),
            "project_crew_assignments",
            [column],
            unique=False,
        )

    op.create_table(
        "project_tasks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("phase_name", sa.String(length=200), nullable=False),
        sa.Column("phase_order", sa.Integer(), nullable=False),
        sa.Column("step_name", sa.String(length=200), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("task_order", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=True),
        sa.Column("parent_task_id", sa.Integer(), nullable=True),
        sa.Column("assigned_role_id", sa.Integer(), nullable=True),
        sa.Column("checklist_items", sa.JSON(), nullable=False),
        sa.Column("comments", sa.JSON(), nullable=False),
        sa.Column("escalation_reason", sa.Text(), nullable=True),
        sa.Column("escalated_at", sa.DateTime(), nullable=True),
        sa.Column("is_manually_escalated", sa.Boolean(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("deadline", sa.DateTime(), nullable=True),
        sa.Column("is_loaded", sa.Boolean(), nullable=False),
        sa.Column("is_custom", sa.Boolean(), nullable=False),
        sa.Column("is_archived", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        sa.Column("updated_by", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("version >= 1", name="ck_project_tasks_version_positive"),
        sa.CheckConstraint(
            "status = 'pending' OR started_at IS NOT NULL",
            name="ck_project_tasks_started_requires_started_at",
        ),
        sa.CheckConstraint(
            "completed_at IS NULL OR started_at IS NOT NULL",
            name="ck_project_tasks_completed_requires_started_at",
        ),
        sa.CheckConstraint(
            "escalated_at IS NULL OR status = 'escalated'",
            name="ck_project_tasks_escalated_at_status_match",
        ),
        sa.CheckConstraint(
            "status <> 'escalated' OR escalated_at IS NOT NULL",
            name="ck_project_tasks_escalated_requires_escalated_at",
        ),
        sa.CheckConstraint(
            "status <> 'completed' OR completed_at IS NOT NULL",
            name="ck_project_tasks_completed_requires_completed_at",
        ),
        sa.ForeignKeyConstraint(["assigned_role_id"], ["project_roles.id"]),
        sa.ForeignKeyConstraint(["parent_task_id"], ["project_tasks.id"]),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for column in ("project_id", "name", "status", "category", "parent_task_id", "deadline"):
        op.create_index(
            op.f(f"ix_project_tasks_{column}"), "project_tasks", [column], unique=False
        )
    op.create_index(
        "ix_project_tasks_project_ordering",
        "project_tasks",
        ["project_id", "phase_order", "step_order", "task_order"],
        unique=False,
    )
    op.create_index(
        "ix_project_tasks_project_loaded",
        "project_tasks",
        ["project_id", "is_loaded", "is_archived"],
        unique=False,
    )

    op.create_table(
        "project_task_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("task_id", sa.Integer(), nullable=False),
        sa.Column("project_role_id", sa.Integer(), nullable=False),
        sa.Column("crew_id", sa.Integer(), nullable=False),
        sa.Column("assigned_by", sa.String(length=255), nullable=False),
        sa.Column("assigned_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["crew_id"], ["crew.id"]),
        sa.ForeignKeyConstraint(["project_role_id"], ["project_roles.id"]),
        sa.ForeignKeyConstraint(["task_id"], ["project_tasks.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("task_id", "crew_id", name="uq_project_task_assignments_task_crew"),
    )
    for column in ("task_id", "project_role_id", "crew_id"):
        op.create_index(
            op.f(f"ix_project_task_assignments_{column}"),
            "project_task_assignments",
            [column],
            unique=False,
        )


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_table("project_task_assignments")
    op.drop_table("project_tasks")
    op.drop_table("project_crew_assignments")
    op.drop_table("project_roles")
    op.drop_table("crew")
    op.drop_table("projects")
