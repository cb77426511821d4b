"""Create superadmin audit log and document tables.

Revision ID: 20261018_superadmin
Revises:
Create Date: 2026-10-18 09:12:41.204117
"""

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261018_superadmin"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "superadmin_audit_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("category", sa.String(length=16), nullable=False),
        sa.Column("details", sa.Text(), nullable=False),
        sa.Column("ip_address", sa.String(length=45), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_superadmin_audit_logs_timestamp"), "superadmin_audit_logs", ["timestamp"], unique=False
    )
    op.create_index(op.f("ix_superadmin_audit_logs_action"), "superadmin_audit_logs", ["action"], unique=False)
    op.create_index(
        op.f("ix_superadmin_audit_logs_category"), "superadmin_audit_logs", ["category"], unique=False
    )
    op.create_index(op.f("ix_superadmin_audit_logs_success"), "superadmin_audit_logs", ["success"], unique=False)
    op.create_index(
        "idx_superadmin_audit_logs_timestamp_desc",
        "superadmin_audit_logs",
        [sa.text("timestamp DESC")],
        unique=False,
    )

    op.create_table(
        "documents",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("collection", sa.String(length=64), nullable=False),
        sa.Column("data", JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_documents_collection_created_at", "documents", ["collection", "created_at"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_documents_collection_created_at", table_name="documents")
    op.drop_table("documents")
    op.drop_index("idx_superadmin_audit_logs_timestamp_desc", table_name="superadmin_audit_logs")
    op.drop_index(op.f("ix_superadmin_audit_logs_success"), table_name="superadmin_audit_logs")
    op.drop_index(op.f("ix_superadmin_audit_logs_category"), table_name="superadmin_audit_logs")
    op.drop_index(op.f("ix_superadmin_audit_logs_action"), table_name="superadmin_audit_logs")
    op.drop_index(op.f("ix_superadmin_audit_logs_timestamp"), table_name="superadmin_audit_logs")
    op.drop_table("superadmin_audit_logs")
