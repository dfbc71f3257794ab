"""create compliance tables

Revision ID: 202610160002
Revises: 202610160001
Create Date: 2026-10-16 00:02:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610160002"
down_revision: str | None = "202610160001"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "checklist_templates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("version", sa.String(length=32), nullable=False),
        sa.Column("region", sa.String(length=128), nullable=True),
        sa.Column("business_type", sa.String(length=64), nullable=True),
        sa.Column("sections", sa.JSON(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_checklist_templates_region", "checklist_templates", ["region"], unique=False)
    op.create_index("ix_checklist_templates_business_type", "checklist_templates", ["business_type"], unique=False)

    op.create_table(
        "tracking_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("checklist_id", sa.Uuid(), nullable=False),
        sa.Column("item_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="not_started"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("attachments", sa.JSON(), nullable=True),
        sa.Column("next_due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["checklist_id"], ["checklist_templates.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "checklist_id", "item_id", name="uq_tracking_record_tenant_checklist_item"),
    )
    op.create_index("ix_tracking_records_tenant", "tracking_records", ["tenant_id"], unique=False)
    op.create_index("ix_tracking_records_checklist", "tracking_records", ["checklist_id"], unique=False)
    op.create_index("ix_tracking_records_status", "tracking_records", ["status"], unique=False)
    op.create_index("ix_tracking_records_next_due_date", "tracking_records", ["next_due_date"], unique=False)

    op.create_table(
        "tracking_completion_events",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("record_id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(length=16), nullable=False),
        sa.Column("actor_user_id", sa.String(length=128), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["record_id"], ["tracking_records.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_tracking_completion_events_record",
        "tracking_completion_events",
        ["record_id", "occurred_at"],
        unique=False,
    )

    op.create_table(
        "reminders",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("compliance_id", sa.Uuid(), nullable=False),
        sa.Column("reminder_type", sa.String(length=16), nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sent", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("claimed_by", sa.String(length=128), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["compliance_id"], ["tracking_records.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reminders_tenant", "reminders", ["tenant_id"], unique=False)
    op.create_index("ix_reminders_scheduled_for", "reminders", ["scheduled_for"], unique=False)
    op.create_index("ix_reminders_sent", "reminders", ["sent"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_reminders_sent", table_name="reminders")
    op.drop_index("ix_reminders_scheduled_for", table_name="reminders")
    op.drop_index("ix_reminders_tenant", table_name="reminders")
    op.drop_table("reminders")
    op.drop_index("ix_tracking_completion_events_record", table_name="tracking_completion_events")
    op.drop_table("tracking_completion_events")
    op.drop_index("ix_tracking_records_next_due_date", table_name="tracking_records")
    op.drop_index("ix_tracking_records_status", table_name="tracking_records")
    op.drop_index("ix_tracking_records_checklist", table_name="tracking_records")
    op.drop_index("ix_tracking_records_tenant", table_name="tracking_records")
    op.drop_table("tracking_records")
    op.drop_index("ix_checklist_templates_business_type", table_name="checklist_templates")
    op.drop_index("ix_checklist_templates_region", table_name="checklist_templates")
    op.drop_table("checklist_templates")
