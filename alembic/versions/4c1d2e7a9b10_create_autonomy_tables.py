"""
create autonomy settings, approval and decision log tables

Revision ID: 4c1d2e7a9b10
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "4c1d2e7a9b10"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "autonomy_settings",
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("capabilities", sa.JSON, nullable=False),
        sa.Column("work_hours_override", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("family_time_override", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("sleep_hours_override", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("financial_threshold", sa.Float, nullable=False, server_default=sa.text("0")),
        sa.Column("time_commitment_threshold", sa.Integer, nullable=False, server_default=sa.text("60")),
        sa.Column("people_affected_threshold", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "autonomy_settings_history",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("changes", sa.JSON, nullable=False),
    )
    op.create_index(
        "ix_autonomy_settings_history_user_changed",
        "autonomy_settings_history",
        ["user_id", "changed_at"],
    )

    op.create_table(
        "approval_requests",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("action_id", sa.String(128), nullable=False),
        sa.Column("action_type", sa.String(128), nullable=False),
        sa.Column("capability", sa.String(128), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("body", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default=sa.text("0")),
    )
    op.create_index("ix_approval_requests_user_status", "approval_requests", ["user_id", "status"])
    op.create_index("ix_approval_requests_expires_at", "approval_requests", ["expires_at"])

    op.create_table(
        "approval_participants",
        sa.Column(
            "request_id",
            sa.String(64),
            sa.ForeignKey("approval_requests.id"),
            primary_key=True,
        ),
        sa.Column("user_id", sa.String(128), primary_key=True),
        sa.Column("role", sa.String(16), nullable=False),
    )
    op.create_index("ix_approval_participants_user_id", "approval_participants", ["user_id"])

    op.create_table(
        "action_decision_log",
        sa.Column("action_id", sa.String(128), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False),
        sa.Column("action_type", sa.String(128), nullable=False),
        sa.Column("capability", sa.String(128), nullable=False),
        sa.Column("risk_level", sa.String(16), nullable=False),
        sa.Column("confidence", sa.Float, nullable=False),
        sa.Column("autonomy_level", sa.Integer, nullable=False),
        sa.Column("outcome", sa.String(32), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_action_decision_log_user_created",
        "action_decision_log",
        ["user_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_action_decision_log_user_created", table_name="action_decision_log")
    op.drop_table("action_decision_log")

    op.drop_index("ix_approval_participants_user_id", table_name="approval_participants")
    op.drop_table("approval_participants")

    op.drop_index("ix_approval_requests_expires_at", table_name="approval_requests")
    op.drop_index("ix_approval_requests_user_status", table_name="approval_requests")
    op.drop_table("approval_requests")

    op.drop_index(
        "ix_autonomy_settings_history_user_changed",
        table_name="autonomy_settings_history",
    )
    op.drop_table("autonomy_settings_history")

    op.drop_table("autonomy_settings")
