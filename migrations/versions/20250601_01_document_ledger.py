"""document ledger, reminder settings and event log

Revision ID: 3c1f5a7d2b90
Revises:
Create Date: 2025-06-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c1f5a7d2b90'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create clients, settings, ledger and event tables."""
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("emails", sa.JSON(), nullable=False),
        sa.Column("chat_target", sa.String(255), nullable=True),
        sa.Column("document_types", sa.JSON(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "reminder_settings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("month_label", sa.String(32), nullable=False),
        sa.Column("due_dates", sa.JSON(), nullable=False),
        sa.Column("reminder_dates", sa.JSON(), nullable=False),
        sa.Column("channel_enabled", sa.JSON(), nullable=False),
        sa.Column("dispatch_hour", sa.Integer(), nullable=False, server_default="9"),
        sa.Column("dispatch_minute", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("dispatch_meridiem", sa.String(2), nullable=False, server_default="AM"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "document_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("month_label", sa.String(32), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_document_records_month_client", "document_records", ["month_label", "client_id"])

    op.create_table(
        "document_receipts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("record_id", sa.Integer(), sa.ForeignKey("document_records.id", ondelete="CASCADE"), nullable=False),
        sa.Column("document_type", sa.String(64), nullable=False),
        sa.Column("received", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("received_date", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("record_id", "document_type", name="uq_document_receipts_record_type"),
    )

    op.create_table(
        "reminder_marks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("record_id", sa.Integer(), sa.ForeignKey("document_records.id", ondelete="CASCADE"), nullable=False),
        sa.Column("document_type", sa.String(64), nullable=False),
        sa.Column("tier", sa.Integer(), nullable=False),
        sa.Column("sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sent_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.UniqueConstraint("record_id", "document_type", "tier", name="uq_reminder_marks_record_type_tier"),
    )

    op.create_table(
        "reminder_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("channel", sa.String(16), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id"), nullable=False),
        sa.Column("target", sa.Text(), nullable=False),
        sa.Column("subject", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("document_types", sa.JSON(), nullable=False),
        sa.Column("tier", sa.Integer(), nullable=False),
        sa.Column("month_label", sa.String(32), nullable=False),
        sa.Column("outcome", sa.String(16), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_reminder_events_month_client", "reminder_events", ["month_label", "client_id"])


def downgrade() -> None:
    """Drop every ledger table."""
    op.drop_index("ix_reminder_events_month_client", table_name="reminder_events")
    op.drop_table("reminder_events")
    op.drop_table("reminder_marks")
    op.drop_table("document_receipts")
    op.drop_index("ix_document_records_month_client", table_name="document_records")
    op.drop_table("document_records")
    op.drop_table("reminder_settings")
    op.drop_table("clients")
