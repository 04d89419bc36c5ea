"""create documents

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None

RECORD_KINDS = ("todos", "notes", "recipes", "transactions", "budgets", "habits")


def upgrade() -> None:
    op.create_table(
        "documents",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("kind", sa.Enum(*RECORD_KINDS, name="recordkind"), nullable=False),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("fields", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index(
        "ix_documents_owner_kind_created",
        "documents",
        ["owner_id", "kind", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_documents_owner_kind_created", table_name="documents")
    op.drop_table("documents")
