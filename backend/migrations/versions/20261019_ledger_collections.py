"""Ledger collections table

Revision ID: 20261019_ledger_collections
Revises:
Create Date: 2026-10-19 09:00:00.000000

One row per namespaced record collection (pos.items, pos.sales, ...), the
records held as a JSON document. version_id backs optimistic locking.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_ledger_collections"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "ledger_collections",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ledger_collections", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_ledger_collections_name"), ["name"], unique=True)


def downgrade():
    with op.batch_alter_table("ledger_collections", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_ledger_collections_name"))

    op.drop_table("ledger_collections")
