"""create local ledger store tables

Revision ID: 7c1e4b9a2d30
Revises: 
Create Date: 2026-10-19 09:30:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "7c1e4b9a2d30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "queued_transactions",
        sa.Column("local_id", sa.String(length=64), primary_key=True),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("profile_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("proof_ref", sa.Text()),
        sa.Column("app_name", sa.String(length=100)),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("synced", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_queued_transactions_seq", "queued_transactions", ["seq"], unique=True)
    op.create_index("ix_queued_transactions_profile_id", "queued_transactions", ["profile_id"])

    op.create_table(
        "backup_snapshots",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("profile_id", sa.String(length=36), nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False),
        sa.Column("version", sa.String(length=20), nullable=False),
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_backup_snapshots_profile_id", "backup_snapshots", ["profile_id"])
    op.create_index("ix_backup_snapshots_created_at", "backup_snapshots", ["created_at"])

    op.create_table(
        "billing_sessions",
        sa.Column("profile_id", sa.String(length=36), primary_key=True),
        sa.Column("app_name", sa.String(length=100), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("tokens_charged", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("billing_sessions")
    op.drop_index("ix_backup_snapshots_created_at", table_name="backup_snapshots")
    op.drop_index("ix_backup_snapshots_profile_id", table_name="backup_snapshots")
    op.drop_table("backup_snapshots")
    op.drop_index("ix_queued_transactions_profile_id", table_name="queued_transactions")
    op.drop_index("ix_queued_transactions_seq", table_name="queued_transactions")
    op.drop_table("queued_transactions")
