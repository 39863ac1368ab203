"""initial report pipeline schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps(*, updated: bool) -> list[sa.Column]:
    columns = [sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False)
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "reports",
        sa.Column("id", sa.String(length=128), nullable=False),
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("project_name", sa.String(length=255), nullable=False),
        sa.Column("submitter_id", sa.String(length=128), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("raw_transcript_text", sa.Text(), nullable=True),
        sa.Column("transcript_path", sa.String(length=512), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending_analysis"),
        sa.Column("extraction_version", sa.String(length=64), nullable=True),
        sa.Column("failure_kind", sa.String(length=64), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("retryable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("claim_token", sa.String(length=64), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status_changed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reports_submitter_id", "reports", ["submitter_id"], unique=False)
    op.create_index("ix_reports_status", "reports", ["status"], unique=False)
    op.create_index("ix_reports_project_id_report_date", "reports", ["project_id", "report_date"], unique=False)

    op.create_table(
        "extraction_attempts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("report_id", sa.String(length=128), nullable=False),
        sa.Column("model_name", sa.String(length=128), nullable=False),
        sa.Column("prompt_version", sa.String(length=64), nullable=False),
        sa.Column("input_hash", sa.String(length=64), nullable=False),
        sa.Column("raw_response", sa.Text(), nullable=True),
        sa.Column("structured_payload_json", sa.JSON(), nullable=False),
        sa.Column("rejected_items_json", sa.JSON(), nullable=False),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("validation_passed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("error_kind", sa.String(length=64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("cache_hit", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("superseded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("superseded_reason", sa.String(length=255), nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["report_id"], ["reports.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_extraction_attempts_report_id", "extraction_attempts", ["report_id"], unique=False)
    op.create_index("ix_extraction_attempts_input_hash", "extraction_attempts", ["input_hash"], unique=False)

    op.create_table(
        "persons",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("canonical_name", sa.String(length=255), nullable=False),
        sa.Column("name_key", sa.String(length=255), nullable=False),
        sa.Column("name_variants_json", sa.JSON(), nullable=False),
        sa.Column("current_position", sa.String(length=128), nullable=True),
        sa.Column("date_first_seen", sa.Date(), nullable=False),
        sa.Column("date_last_seen", sa.Date(), nullable=False),
        sa.Column("total_reports_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_hours_worked", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("merged_into_id", sa.String(length=64), nullable=True),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(["merged_into_id"], ["persons.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_persons_name_key", "persons", ["name_key"], unique=False)
    op.create_index("ix_persons_status", "persons", ["status"], unique=False)
    op.create_index("ix_persons_merged_into_id", "persons", ["merged_into_id"], unique=False)

    op.create_table(
        "vendors",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("canonical_company_name", sa.String(length=255), nullable=False),
        sa.Column("name_key", sa.String(length=255), nullable=False),
        sa.Column("name_variants_json", sa.JSON(), nullable=False),
        sa.Column("vendor_type", sa.String(length=32), nullable=False, server_default="other"),
        sa.Column("date_first_seen", sa.Date(), nullable=False),
        sa.Column("date_last_seen", sa.Date(), nullable=False),
        sa.Column("total_deliveries_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("merged_into_id", sa.String(length=64), nullable=True),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(["merged_into_id"], ["vendors.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vendors_name_key", "vendors", ["name_key"], unique=False)
    op.create_index("ix_vendors_status", "vendors", ["status"], unique=False)
    op.create_index("ix_vendors_merged_into_id", "vendors", ["merged_into_id"], unique=False)

    op.create_table(
        "entity_name_keys",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_kind", sa.String(length=16), nullable=False),
        sa.Column("name_key", sa.String(length=255), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("entity_kind", "name_key", name="uq_entity_name_keys_kind_key"),
    )
    op.create_index("ix_entity_name_keys_entity_id", "entity_name_keys", ["entity_id"], unique=False)

    op.create_table(
        "person_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("person_id", sa.String(length=64), nullable=False),
        sa.Column("report_id", sa.String(length=128), nullable=False),
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("extraction_attempt_id", sa.Integer(), nullable=False),
        sa.Column("observed_name", sa.String(length=255), nullable=False),
        sa.Column("position", sa.String(length=128), nullable=True),
        sa.Column("team_assignment", sa.String(length=128), nullable=True),
        sa.Column("hours_worked", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("overtime_hours", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("health_status", sa.String(length=255), nullable=True),
        sa.Column("activities", sa.Text(), nullable=True),
        sa.Column("source_excerpt", sa.Text(), nullable=False),
        sa.Column("match_type", sa.String(length=32), nullable=False),
        sa.Column("match_score", sa.Float(), nullable=False, server_default=sa.text("100.0")),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("review_state", sa.String(length=16), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("superseded", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["person_id"], ["persons.id"]),
        sa.ForeignKeyConstraint(["report_id"], ["reports.id"]),
        sa.ForeignKeyConstraint(["extraction_attempt_id"], ["extraction_attempts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "person_id",
            "report_id",
            "extraction_attempt_id",
            name="uq_person_history_person_report_attempt",
        ),
    )
    op.create_index("ix_person_history_person_id", "person_history", ["person_id"], unique=False)
    op.create_index("ix_person_history_report_id", "person_history", ["report_id"], unique=False)
    op.create_index("ix_person_history_needs_review", "person_history", ["needs_review"], unique=False)
    op.create_index(
        "ix_person_history_project_id_report_date",
        "person_history",
        ["project_id", "report_date"],
        unique=False,
    )

    op.create_table(
        "vendor_deliveries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("vendor_id", sa.String(length=64), nullable=False),
        sa.Column("report_id", sa.String(length=128), nullable=False),
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("extraction_attempt_id", sa.Integer(), nullable=False),
        sa.Column("observed_name", sa.String(length=255), nullable=False),
        sa.Column("materials", sa.Text(), nullable=True),
        sa.Column("delivery_time", sa.String(length=64), nullable=True),
        sa.Column("received_by", sa.String(length=255), nullable=True),
        sa.Column("delivery_status", sa.String(length=16), nullable=False, server_default="unknown"),
        sa.Column("issues", sa.Text(), nullable=True),
        sa.Column("cost_impact", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("source_excerpt", sa.Text(), nullable=False),
        sa.Column("match_type", sa.String(length=32), nullable=False),
        sa.Column("match_score", sa.Float(), nullable=False, server_default=sa.text("100.0")),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("review_state", sa.String(length=16), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("superseded", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
        sa.ForeignKeyConstraint(["report_id"], ["reports.id"]),
        sa.ForeignKeyConstraint(["extraction_attempt_id"], ["extraction_attempts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "vendor_id",
            "report_id",
            "extraction_attempt_id",
            name="uq_vendor_deliveries_vendor_report_attempt",
        ),
    )
    op.create_index("ix_vendor_deliveries_vendor_id", "vendor_deliveries", ["vendor_id"], unique=False)
    op.create_index("ix_vendor_deliveries_report_id", "vendor_deliveries", ["report_id"], unique=False)
    op.create_index("ix_vendor_deliveries_needs_review", "vendor_deliveries", ["needs_review"], unique=False)
    op.create_index(
        "ix_vendor_deliveries_project_id_report_date",
        "vendor_deliveries",
        ["project_id", "report_date"],
        unique=False,
    )

    op.create_table(
        "team_assignments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("team_key", sa.String(length=128), nullable=False),
        sa.Column("team_label", sa.String(length=128), nullable=False),
        sa.Column("person_id", sa.String(length=64), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_seen_date", sa.Date(), nullable=False),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(["person_id"], ["persons.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "team_key", "person_id", name="uq_team_assignments_project_team_person"),
    )
    op.create_index("ix_team_assignments_project_id", "team_assignments", ["project_id"], unique=False)
    op.create_index("ix_team_assignments_person_id", "team_assignments", ["person_id"], unique=False)

    op.create_table(
        "work_log_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("report_id", sa.String(length=128), nullable=False),
        sa.Column("extraction_attempt_id", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("team_id", sa.String(length=128), nullable=True),
        sa.Column("team_key", sa.String(length=128), nullable=False),
        sa.Column("level", sa.String(length=128), nullable=True),
        sa.Column("level_key", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("personnel_ids_json", sa.JSON(), nullable=False),
        sa.Column("personnel_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("hours_worked", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("overtime_hours", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("materials_json", sa.JSON(), nullable=False),
        sa.Column("equipment_json", sa.JSON(), nullable=False),
        sa.Column("roster_expanded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("unresolved_mentions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("source_excerpt", sa.Text(), nullable=False),
        sa.Column("superseded", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["report_id"], ["reports.id"]),
        sa.ForeignKeyConstraint(["extraction_attempt_id"], ["extraction_attempts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "report_id",
            "extraction_attempt_id",
            "team_key",
            "level_key",
            name="uq_work_log_entries_report_attempt_team_level",
        ),
    )
    op.create_index("ix_work_log_entries_report_id", "work_log_entries", ["report_id"], unique=False)
    op.create_index(
        "ix_work_log_entries_project_id_report_date",
        "work_log_entries",
        ["project_id", "report_date"],
        unique=False,
    )

    op.create_table(
        "constraint_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("report_id", sa.String(length=128), nullable=False),
        sa.Column("extraction_attempt_id", sa.Integer(), nullable=False),
        sa.Column("ordinal", sa.Integer(), nullable=False),
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("resolution_status", sa.String(length=16), nullable=False, server_default="unresolved"),
        sa.Column("level", sa.String(length=128), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("cost_impact", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("cost_source", sa.String(length=16), nullable=False, server_default="none"),
        sa.Column("hours_lost", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("crew_size", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("vendor_id", sa.String(length=64), nullable=True),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("review_reasons_json", sa.JSON(), nullable=False),
        sa.Column("source_excerpt", sa.Text(), nullable=False),
        sa.Column("superseded", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(updated=True),
        sa.ForeignKeyConstraint(["report_id"], ["reports.id"]),
        sa.ForeignKeyConstraint(["extraction_attempt_id"], ["extraction_attempts.id"]),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "report_id",
            "extraction_attempt_id",
            "ordinal",
            name="uq_constraint_records_report_attempt_ordinal",
        ),
    )
    op.create_index("ix_constraint_records_report_id", "constraint_records", ["report_id"], unique=False)
    op.create_index("ix_constraint_records_vendor_id", "constraint_records", ["vendor_id"], unique=False)
    op.create_index(
        "ix_constraint_records_project_id_report_date",
        "constraint_records",
        ["project_id", "report_date"],
        unique=False,
    )

    op.create_table(
        "resolution_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("report_id", sa.String(length=128), nullable=True),
        sa.Column("entity_kind", sa.String(length=16), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("event_type", sa.String(length=32), nullable=False),
        sa.Column("observed_name", sa.String(length=255), nullable=True),
        sa.Column("similarity_score", sa.Float(), nullable=True),
        sa.Column("rationale", sa.String(length=255), nullable=False),
        sa.Column("details_json", sa.JSON(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_resolution_events_report_id", "resolution_events", ["report_id"], unique=False)
    op.create_index("ix_resolution_events_entity_id", "resolution_events", ["entity_id"], unique=False)

    op.create_table(
        "review_decisions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_kind", sa.String(length=16), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("decision", sa.String(length=16), nullable=False),
        sa.Column("target_entity_id", sa.String(length=64), nullable=True),
        sa.Column("reviewer", sa.String(length=128), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("details_json", sa.JSON(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_review_decisions_entity_id", "review_decisions", ["entity_id"], unique=False)

    op.create_table(
        "labor_rollups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("window_key", sa.String(length=32), nullable=False),
        sa.Column("person_id", sa.String(length=64), nullable=True),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("report_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("regular_hours", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("overtime_hours", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("double_time_hours", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("total_hours", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("labor_cost", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_labor_rollups_project_window", "labor_rollups", ["project_id", "window_key"], unique=False)

    op.create_table(
        "vendor_rollups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("window_key", sa.String(length=32), nullable=False),
        sa.Column("vendor_id", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("delivery_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("on_time_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("late_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("missed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("on_time_rate", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("incident_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("incident_cost", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("chargeback_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("performance_score", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("grade", sa.String(length=1), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vendor_rollups_project_window", "vendor_rollups", ["project_id", "window_key"], unique=False)

    op.create_table(
        "constraint_cost_rollups",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("project_id", sa.String(length=128), nullable=False),
        sa.Column("window_key", sa.String(length=32), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("constraint_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("open_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_cost_impact", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        sa.Column("total_hours_lost", sa.Float(), nullable=False, server_default=sa.text("0.0")),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_constraint_cost_rollups_project_window",
        "constraint_cost_rollups",
        ["project_id", "window_key"],
        unique=False,
    )


def downgrade() -> None:
    for index_name, table_name in (
        ("ix_constraint_cost_rollups_project_window", "constraint_cost_rollups"),
        ("ix_vendor_rollups_project_window", "vendor_rollups"),
        ("ix_labor_rollups_project_window", "labor_rollups"),
        ("ix_review_decisions_entity_id", "review_decisions"),
        ("ix_resolution_events_entity_id", "resolution_events"),
        ("ix_resolution_events_report_id", "resolution_events"),
        ("ix_constraint_records_project_id_report_date", "constraint_records"),
        ("ix_constraint_records_vendor_id", "constraint_records"),
        ("ix_constraint_records_report_id", "constraint_records"),
        ("ix_work_log_entries_project_id_report_date", "work_log_entries"),
        ("ix_work_log_entries_report_id", "work_log_entries"),
        ("ix_team_assignments_person_id", "team_assignments"),
        ("ix_team_assignments_project_id", "team_assignments"),
        ("ix_vendor_deliveries_project_id_report_date", "vendor_deliveries"),
        ("ix_vendor_deliveries_needs_review", "vendor_deliveries"),
        ("ix_vendor_deliveries_report_id", "vendor_deliveries"),
        ("ix_vendor_deliveries_vendor_id", "vendor_deliveries"),
        ("ix_person_history_project_id_report_date", "person_history"),
        ("ix_person_history_needs_review", "person_history"),
        ("ix_person_history_report_id", "person_history"),
        ("ix_person_history_person_id", "person_history"),
        ("ix_entity_name_keys_entity_id", "entity_name_keys"),
        ("ix_vendors_merged_into_id", "vendors"),
        ("ix_vendors_status", "vendors"),
        ("ix_vendors_name_key", "vendors"),
        ("ix_persons_merged_into_id", "persons"),
        ("ix_persons_status", "persons"),
        ("ix_persons_name_key", "persons"),
        ("ix_extraction_attempts_input_hash", "extraction_attempts"),
        ("ix_extraction_attempts_report_id", "extraction_attempts"),
        ("ix_reports_project_id_report_date", "reports"),
        ("ix_reports_status", "reports"),
        ("ix_reports_submitter_id", "reports"),
    ):
        op.drop_index(index_name, table_name=table_name)
    for table_name in (
        "constraint_cost_rollups",
        "vendor_rollups",
        "labor_rollups",
        "review_decisions",
        "resolution_events",
        "constraint_records",
        "work_log_entries",
        "team_assignments",
        "vendor_deliveries",
        "person_history",
        "entity_name_keys",
        "vendors",
        "persons",
        "extraction_attempts",
        "reports",
    ):
        op.drop_table(table_name)
