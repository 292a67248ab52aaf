"""Add editable layout templates and their backup history

Revision ID: 002
Revises: 001
Create Date: 2025-02-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002'
down_revision = '001'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create layout_templates table
    op.create_table('layout_templates',
        sa.Column('layout_type', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['updated_by'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('layout_type')
    )

    # Create layout_backups table
    op.create_table('layout_backups',
        sa.Column('backup_id', sa.Integer(), nullable=False),
        sa.Column('layout_type', sa.String(length=20), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['created_by'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('backup_id')
    )
    op.create_index(op.f('ix_layout_backups_backup_id'), 'layout_backups', ['backup_id'], unique=False)
    op.create_index(op.f('ix_layout_backups_layout_type'), 'layout_backups', ['layout_type'], unique=False)
    op.create_index(op.f('ix_layout_backups_created_at'), 'layout_backups', ['created_at'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_layout_backups_created_at'), table_name='layout_backups')
    op.drop_index(op.f('ix_layout_backups_layout_type'), table_name='layout_backups')
    op.drop_index(op.f('ix_layout_backups_backup_id'), table_name='layout_backups')
    op.drop_table('layout_backups')
    op.drop_table('layout_templates')
