"""Initial migration - create defenses and defense_history tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'defenses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('dispute_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='drafted'),
        sa.Column('source', sa.String(50), nullable=False, server_default='manual'),
        sa.Column('contestation_type', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('form_data_json', sa.Text(), nullable=True),
        sa.Column('submission_response_json', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_defenses_dispute_id', 'defenses', ['dispute_id'])
    op.create_index('ix_defenses_status', 'defenses', ['status'])
    op.create_index('ix_defenses_source', 'defenses', ['source'])
    op.create_index('ix_defenses_created_at', 'defenses', ['created_at'])
    op.create_index(
        'uq_defenses_active_dispute',
        'defenses',
        ['dispute_id'],
        unique=True,
        sqlite_where=sa.text('is_active = 1'),
        postgresql_where=sa.text('is_active'),
    )

    op.create_table(
        'defense_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('defense_id', sa.String(36), sa.ForeignKey('defenses.id'), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('previous_status', sa.String(50), nullable=True),
        sa.Column('new_status', sa.String(50), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('action_metadata_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_defense_history_defense_id', 'defense_history', ['defense_id'])
    op.create_index('ix_defense_history_action', 'defense_history', ['action'])
    op.create_index('ix_defense_history_created_at', 'defense_history', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_defense_history_created_at', table_name='defense_history')
    op.drop_index('ix_defense_history_action', table_name='defense_history')
    op.drop_index('ix_defense_history_defense_id', table_name='defense_history')
    op.drop_table('defense_history')

    op.drop_index('uq_defenses_active_dispute', table_name='defenses')
    op.drop_index('ix_defenses_created_at', table_name='defenses')
    op.drop_index('ix_defenses_source', table_name='defenses')
    op.drop_index('ix_defenses_status', table_name='defenses')
    op.drop_index('ix_defenses_dispute_id', table_name='defenses')
    op.drop_table('defenses')
