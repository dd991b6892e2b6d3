"""Exclusion constraint: no two blocking appointments of one staff member overlap.

Revision ID: 002_no_overlap
Revises: 001_initial
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "002_no_overlap"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Statuses that occupy [start_time, blocked_until) for the staff member
BLOCKING_STATUSES = ("Confirmed", "AwaitingPayment")


def upgrade() -> None:
    conn = op.get_bind()
    if conn.dialect.name != "postgresql":
        return
    conn.execute(sa.text("CREATE EXTENSION IF NOT EXISTS btree_gist"))
    statuses_sql = "(" + ", ".join(f"'{s}'" for s in BLOCKING_STATUSES) + ")"
    conn.execute(
        sa.text(
            "ALTER TABLE appointments ADD CONSTRAINT appointments_staff_no_overlap "
            "EXCLUDE USING gist (staff_id WITH =, tsrange(start_time, blocked_until, '[)') WITH &&) "
            f"WHERE (status IN {statuses_sql})"
        )
    )


def downgrade() -> None:
    conn = op.get_bind()
    if conn.dialect.name != "postgresql":
        return
    conn.execute(sa.text("ALTER TABLE appointments DROP CONSTRAINT IF EXISTS appointments_staff_no_overlap"))
