"""add rollup uniqueness and per-project recompute lock

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 00:00:02
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_0002"
down_revision: str | None = "20261018_0001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "rollup_locks",
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("recomputed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("project_id"),
    )
    op.create_unique_constraint(
        "uq_labor_rollups_project_window_person",
        "labor_rollups",
        ["project_id", "window_key", "person_id"],
    )
    op.create_unique_constraint(
        "uq_vendor_rollups_project_window_vendor",
        "vendor_rollups",
        ["project_id", "window_key", "vendor_id"],
    )
    op.create_unique_constraint(
        "uq_constraint_cost_rollups_project_window_bucket",
        "constraint_cost_rollups",
        ["project_id", "window_key", "category", "severity"],
    )


def downgrade() -> None:
    op.drop_constraint("uq_constraint_cost_rollups_project_window_bucket", "constraint_cost_rollups", type_="unique")
    op.drop_constraint("uq_vendor_rollups_project_window_vendor", "vendor_rollups", type_="unique")
    op.drop_constraint("uq_labor_rollups_project_window_person", "labor_rollups", type_="unique")
    op.drop_table("rollup_locks")
