"""create_break_glass_tables

Revision ID: c1a9f3e0d7b2
Revises:
Create Date: 2026-10-18 12:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c1a9f3e0d7b2'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, role assignments, break-glass sessions and the audit log."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(100), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_users_email', 'users', ['email'])
    op.create_index('idx_users_is_active', 'users', ['is_active'])

    op.create_table(
        'user_roles',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(100), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('granted_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
    )
    op.create_index('idx_user_roles_role', 'user_roles', ['role'])

    # One row per user; the unique user_id serialises concurrent activations
    op.create_table(
        'break_glass_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(100), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('activated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('activated_by', sa.String(100), nullable=True),
        sa.Column('original_role', sa.String(50), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('secret_code_hash', sa.String(255), nullable=False),
        sa.Column('promotion_code_hash', sa.String(255), nullable=False),
        sa.Column('promotion_code_encrypted', sa.Text(), nullable=True),
        sa.UniqueConstraint('user_id', name='uq_break_glass_sessions_user_id'),
    )
    op.create_index('idx_break_glass_expires_at', 'break_glass_sessions', ['expires_at'])
    op.create_index('idx_break_glass_activated_by', 'break_glass_sessions', ['activated_by'])

    # No FK on user_id: entries outlive the users they describe
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('user_id', sa.String(100), nullable=True),
        sa.Column('user_email', sa.String(255), nullable=True),
        sa.Column('ip', sa.String(45), nullable=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('module', sa.String(100), nullable=False),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), server_default='SUCCESS', nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
    )
    op.create_index('idx_audit_created_at', 'audit_logs', ['created_at'])
    op.create_index('idx_audit_user_id', 'audit_logs', ['user_id'])
    op.create_index('idx_audit_module', 'audit_logs', ['module'])
    op.create_index('idx_audit_action', 'audit_logs', ['action'])


def downgrade() -> None:
    """Drop the break-glass tables."""
    op.drop_table('audit_logs')
    op.drop_table('break_glass_sessions')
    op.drop_table('user_roles')
    op.drop_table('users')
