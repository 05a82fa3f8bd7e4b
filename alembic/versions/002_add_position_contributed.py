"""Add contributed principal to positions

Revision ID: 002_add_position_contributed
Revises: 001_create_ledger_tables
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '002_add_position_contributed'
down_revision = '001_create_ledger_tables'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column('positions', sa.Column('contributed', sa.String(64), nullable=True))

    # Rows written before this revision: treat the whole principal as contributed
    op.execute(
        "UPDATE positions SET contributed = amount WHERE contributed IS NULL"
    )


def downgrade() -> None:
    op.drop_column('positions', 'contributed')
