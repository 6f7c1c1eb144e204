"""Create intake, tool, conversion job and audit tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
import sqlalchemy as sa
from alembic import op

# revision identifiers
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None

INTAKE_STATUSES = ("pending_review", "approved", "rejected", "needs_changes", "converted_to_tool")
TOOL_STATUSES = ("active", "deprecated", "deleted")
TOOL_UPDATE_STATUSES = ("pending", "validated", "validation_failed")
JOB_STATUSES = ("queued", "running", "succeeded", "failed")
AUDIT_ACTIONS = ("created", "updated", "status_changed", "linked")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
    )

    op.create_table(
        "contributors",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("profile_url", sa.String(1024), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("name", "profile_url", name="uq_contributors_name_profile_url"),
    )

    op.create_table(
        "user_profiles",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("name", sa.String(256), nullable=True),
    )

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(36), nullable=False, index=True),
        sa.Column("role", sa.String(50), nullable=False),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    op.create_table(
        "tool_intakes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("package_name", sa.String(214), nullable=False, unique=True),
        sa.Column("version", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(256), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("license", sa.String(64), nullable=False),
        sa.Column("icon", sa.JSON, nullable=True),
        sa.Column("csp_exceptions", sa.JSON, nullable=True),
        sa.Column("configurations", sa.JSON, nullable=False),
        sa.Column("features", sa.JSON, nullable=True),
        sa.Column("min_api", sa.String(64), nullable=True),
        sa.Column("max_api", sa.String(64), nullable=True),
        sa.Column("submitted_by", sa.String(36), nullable=True, index=True),
        sa.Column(
            "status",
            sa.Enum(*INTAKE_STATUSES, name="tool_intake_status"),
            nullable=False,
            server_default="pending_review",
            index=True,
        ),
        sa.Column("validation_warnings", sa.JSON, nullable=True),
        sa.Column("reviewer_notes", sa.Text, nullable=True),
        sa.Column("reviewed_by", sa.String(36), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_tool_intakes_status_created", "tool_intakes", ["status", "created_at"])

    op.create_table(
        "tool_intake_categories",
        sa.Column("intake_id", sa.String(36), sa.ForeignKey("tool_intakes.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("categories.id"), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "tool_intake_contributors",
        sa.Column("intake_id", sa.String(36), sa.ForeignKey("tool_intakes.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("contributor_id", sa.String(36), sa.ForeignKey("contributors.id"), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "tools",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("package_name", sa.String(214), nullable=False, unique=True),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("version", sa.String(64), nullable=True),
        sa.Column("icon", sa.JSON, nullable=True),
        sa.Column("icon_url", sa.String(1024), nullable=True),
        sa.Column("readme_url", sa.String(1024), nullable=True),
        sa.Column("repository_url", sa.String(1024), nullable=True),
        sa.Column("website_url", sa.String(1024), nullable=True),
        sa.Column("license", sa.String(64), nullable=True),
        sa.Column("csp_exceptions", sa.JSON, nullable=True),
        sa.Column("configurations", sa.JSON, nullable=True),
        sa.Column("features", sa.JSON, nullable=True),
        sa.Column("min_api", sa.String(64), nullable=True),
        sa.Column("max_api", sa.String(64), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*TOOL_STATUSES, name="tool_status"),
            nullable=False,
            server_default="active",
            index=True,
        ),
        sa.Column("user_id", sa.String(36), nullable=True, index=True),
        sa.Column("downloads", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rating", sa.Float, nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "tool_categories",
        sa.Column("tool_id", sa.String(36), sa.ForeignKey("tools.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("category_id", sa.Integer, sa.ForeignKey("categories.id"), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "tool_updates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tool_id", sa.String(36), sa.ForeignKey("tools.id"), nullable=True, index=True),
        sa.Column("package_name", sa.String(214), nullable=False, index=True),
        sa.Column("version", sa.String(64), nullable=True),
        sa.Column(
            "status",
            sa.Enum(*TOOL_UPDATE_STATUSES, name="tool_update_status"),
            nullable=False,
            server_default="pending",
            index=True,
        ),
        sa.Column("validation_result", sa.JSON, nullable=True),
        sa.Column("submitted_by", sa.String(36), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "conversion_jobs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("intake_id", sa.String(36), sa.ForeignKey("tool_intakes.id"), nullable=False, index=True),
        sa.Column(
            "status",
            sa.Enum(*JOB_STATUSES, name="conversion_job_status"),
            nullable=False,
            server_default="queued",
            index=True,
        ),
        sa.Column("requested_by", sa.String(36), nullable=True),
        sa.Column("assigned_to", sa.String(100), nullable=True),
        sa.Column("result", sa.JSON, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("error_status_code", sa.Integer, nullable=True),
        sa.Column("outcome", sa.JSON, nullable=True),
        sa.Column("queued_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_conversion_jobs_status_queued", "conversion_jobs", ["status", "queued_at"])

    op.create_table(
        "audit_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("action", sa.Enum(*AUDIT_ACTIONS, name="audit_action"), nullable=False),
        sa.Column("actor_id", sa.String(36), nullable=True, index=True),
        sa.Column("from_status", sa.String(32), nullable=True),
        sa.Column("to_status", sa.String(32), nullable=True),
        sa.Column("changes", sa.JSON, nullable=True),
        sa.Column("note", sa.Text, nullable=True),
    )
    op.create_index(
        "ix_audit_entries_entity", "audit_entries", ["entity_type", "entity_id", "recorded_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_audit_entries_entity", table_name="audit_entries")
    op.drop_table("audit_entries")
    op.drop_index("ix_conversion_jobs_status_queued", table_name="conversion_jobs")
    op.drop_table("conversion_jobs")
    op.drop_table("tool_updates")
    op.drop_table("tool_categories")
    op.drop_table("tools")
    op.drop_table("tool_intake_contributors")
    op.drop_table("tool_intake_categories")
    op.drop_index("ix_tool_intakes_status_created", table_name="tool_intakes")
    op.drop_table("tool_intakes")
    op.drop_table("user_roles")
    op.drop_table("user_profiles")
    op.drop_table("contributors")
    op.drop_table("categories")

    for enum_name in (
        "audit_action",
        "conversion_job_status",
        "tool_update_status",
        "tool_status",
        "tool_intake_status",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
