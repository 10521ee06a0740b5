"""add synced_days to sync_progress

Revision ID: 5d2e8b4c1f07
Revises: 0a1f3c5e7b91
Create Date: 2026-10-19 15:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5d2e8b4c1f07"
down_revision = "0a1f3c5e7b91"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("sync_progress") as batch_op:
        batch_op.add_column(
            sa.Column("synced_days", sa.Integer(), nullable=False, server_default=sa.text("0"))
        )


def downgrade():
    with op.batch_alter_table("sync_progress") as batch_op:
        batch_op.drop_column("synced_days")
