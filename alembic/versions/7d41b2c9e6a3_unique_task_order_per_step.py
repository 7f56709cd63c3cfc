"""unique_task_order_per_step

Revision ID: 7d41b2c9e6a3
Revises: 3a9c4e1b7d20
Create Date: 2026-10-17 10:15:00.000000

"""

from collections.abc import Sequence

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7d41b2c9e6a3"
down_revision: str | Sequence[str] | None = "3a9c4e1b7d20"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    with op.batch_alter_table("project_tasks") as batch_op:
        batch_op.create_unique_constraint(
            "uq_project_tasks_project_phase_step_order",
            ["project_id", "phase_order", "step_order", "task_order"],
        )


def downgrade() -> None:
    with op.batch_alter_table("project_tasks") as batch_op:
        batch_op.drop_constraint("uq_project_tasks_project_phase_step_order", type_="unique")
