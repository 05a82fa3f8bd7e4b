"""Create ledger tables

Revision ID: 001_create_ledger_tables
Revises:
Create Date: 2026-10-17

Adds:
- users table: identity, keypair reference, balances, owned position ids
- positions table: stake principal, bound source, rates, accrual timestamps
- sources table: yield venues with rate, volume, active flag
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_create_ledger_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('public_key', sa.String(128), nullable=False, unique=True),
        sa.Column('secret_key', sa.String(256), nullable=False),
        sa.Column('balance', sa.String(64), nullable=False),
        sa.Column('total_staked', sa.String(64), nullable=False),
        sa.Column('total_earned', sa.String(64), nullable=False),
        sa.Column('position_ids', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'positions',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('source_id', sa.String(64), nullable=False),
        sa.Column('amount', sa.String(64), nullable=False),
        sa.Column('shares', sa.String(64), nullable=False),
        sa.Column('earned', sa.String(64), nullable=False),
        sa.Column('start_rate', sa.String(32), nullable=False),
        sa.Column('current_rate', sa.String(32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_accrual', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_positions_user_id', 'positions', ['user_id'])
    op.create_index('ix_positions_source_id', 'positions', ['source_id'])
    op.create_index('idx_position_user_source', 'positions', ['user_id', 'source_id'])

    op.create_table(
        'sources',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('rate', sa.String(32), nullable=False),
        sa.Column('volume', sa.String(64), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False),
    )
    op.create_index('ix_sources_active', 'sources', ['active'])


def downgrade() -> None:
    op.drop_index('ix_sources_active', table_name='sources')
    op.drop_table('sources')
    op.drop_index('idx_position_user_source', table_name='positions')
    op.drop_index('ix_positions_source_id', table_name='positions')
    op.drop_index('ix_positions_user_id', table_name='positions')
    op.drop_table('positions')
    op.drop_table('users')
