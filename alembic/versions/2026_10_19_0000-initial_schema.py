"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create accounts and generations tables."""

    # ========================================================================
    # Create accounts table
    # ========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('avatar', sa.String(500), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('password_changed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('refresh_token_hash', sa.String(64), nullable=True),
        sa.Column('subscription_tier', sa.String(20), nullable=False, server_default='free'),
        sa.Column('subscription_status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('subscription_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subscription_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('credits_total', sa.BigInteger(), nullable=False, server_default='100'),
        sa.Column('credits_used', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('credits_remaining', sa.BigInteger(), nullable=False, server_default='100'),
        sa.Column('total_requests', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('last_request_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('role', sa.String(20), nullable=False, server_default='user'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.UniqueConstraint('email', name='uq_accounts_email'),
        sa.CheckConstraint('credits_remaining = credits_total - credits_used', name='ck_credits_balanced'),
        sa.CheckConstraint('credits_used >= 0', name='ck_credits_used_non_negative'),
        sa.CheckConstraint('credits_remaining >= 0', name='ck_credits_remaining_non_negative'),
        sa.CheckConstraint('total_requests >= 0', name='ck_total_requests_non_negative'),
        sa.CheckConstraint("subscription_tier IN ('free', 'pro', 'enterprise')", name='ck_subscription_tier'),
        sa.CheckConstraint("subscription_status IN ('active', 'cancelled', 'expired')", name='ck_subscription_status'),
        sa.CheckConstraint("role IN ('user', 'admin')", name='ck_account_role'),
    )

    # Indexes for accounts
    op.create_index('idx_accounts_subscription_tier', 'accounts', ['subscription_tier'])

    # ========================================================================
    # Create generations table
    # ========================================================================
    op.create_table(
        'generations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('account_id', UUID(as_uuid=True), nullable=False),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('prompt', sa.Text(), nullable=False),
        sa.Column('response', JSONB(), nullable=False),
        sa.Column('metadata', JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('credits', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.String(20), nullable=False, server_default='completed'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('credits >= 0', name='ck_generation_credits_non_negative'),
        sa.CheckConstraint("type IN ('text', 'analysis', 'summary', 'image')", name='ck_generation_type'),
        sa.CheckConstraint("status IN ('pending', 'completed', 'failed')", name='ck_generation_status'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], name='fk_generations_account', ondelete='CASCADE'),
    )

    # Indexes for generations
    op.create_index('idx_generations_account_created', 'generations', ['account_id', 'created_at'])
    op.create_index('idx_generations_type', 'generations', ['type'])
    op.create_index('idx_generations_status', 'generations', ['status'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('generations')
    op.drop_table('accounts')
