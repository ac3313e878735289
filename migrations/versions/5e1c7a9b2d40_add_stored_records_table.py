"""add_stored_records_table

Creates the single table behind the SQL record store:
  - stored_records  — one row per logical record (Assets, Bills, Users, ...)
                      keyed by (table_name, record_id), body held as JSON

Created conditionally so databases that already received the table via
db.create_all() in development upgrade cleanly.

Revision ID: 5e1c7a9b2d40
Revises:
Create Date: 2026-10-18 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '5e1c7a9b2d40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    if "stored_records" not in existing:
        op.create_table(
            "stored_records",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("table_name", sa.String(length=50), nullable=False,
                      comment="Logical table: Assets | Agreements | Bills | Users | Roles | ..."),
            sa.Column("record_id", sa.Integer(), nullable=False,
                      comment="Per-table id, assigned as max(id) + 1"),
            sa.Column("data", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("table_name", "record_id", name="uq_stored_records_table_record"),
        )
        op.create_index("ix_stored_records_table_name", "stored_records", ["table_name"])


def downgrade():
    op.drop_index("ix_stored_records_table_name", table_name="stored_records")
    op.drop_table("stored_records")
