from __future__ import annotations

import sqlalchemy as sa

# SSOT table definitions (used by the stores, migrations and tests).
metadata = sa.MetaData()

autonomy_settings = sa.Table(
    "autonomy_settings",
    metadata,
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

autonomy_settings_history = sa.Table(
    "autonomy_settings_history",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
    sa.Column("user_id", sa.String(128), nullable=False),
    sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("changes", sa.JSON, nullable=False),
    sa.Index("ix_autonomy_settings_history_user_changed", "user_id", "changed_at"),
)

approval_requests = sa.Table(
    "approval_requests",
    metadata,
    sa.Column("id", sa.String(64), primary_key=True),
    sa.Column("user_id", sa.String(128), nullable=False),
    sa.Column("action_id", sa.String(128), nullable=False),
    sa.Column("action_type", sa.String(128), nullable=False),
    sa.Column("capability", sa.String(128), nullable=False),
    sa.Column("status", sa.String(16), nullable=False),
    # proposal fields, risk assessment, decision and responses
    sa.Column("body", sa.JSON, nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("version", sa.Integer, nullable=False, server_default=sa.text("0")),
    sa.Index("ix_approval_requests_user_status", "user_id", "status"),
    sa.Index("ix_approval_requests_expires_at", "expires_at"),
)

approval_participants = sa.Table(
    "approval_participants",
    metadata,
    sa.Column(
        "request_id",
        sa.String(64),
        sa.ForeignKey("approval_requests.id"),
        primary_key=True,
    ),
    sa.Column("user_id", sa.String(128), primary_key=True),
    sa.Column("role", sa.String(16), nullable=False),  # owner|affected
    sa.Index("ix_approval_participants_user_id", "user_id"),
)

action_decision_log = sa.Table(
    "action_decision_log",
    metadata,
    sa.Column("action_id", sa.String(128), primary_key=True),
    sa.Column("user_id", sa.String(128), nullable=False),
    sa.Column("action_type", sa.String(128), nullable=False),
    sa.Column("capability", sa.String(128), nullable=False),
    sa.Column("risk_level", sa.String(16), nullable=False),
    sa.Column("confidence", sa.Float, nullable=False),
    sa.Column("autonomy_level", sa.Integer, nullable=False),
    sa.Column("outcome", sa.String(32), nullable=False),  # pending|executed|execution_failed|approval_requested|blocked
    sa.Column("request_id", sa.String(64), nullable=True),
    sa.Column("reason", sa.Text, nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Index("ix_action_decision_log_user_created", "user_id", "created_at"),
)
