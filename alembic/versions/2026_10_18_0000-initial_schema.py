"""initial schema

Revision ID: 2026_10_18_0000
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_18_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create profiles, sessions, payments, credit_transactions, app_settings."""

    # ========================================================================
    # Create profiles table
    # ========================================================================
    op.create_table(
        'profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('credits_in_minutes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('credits_in_minutes >= 0', name='ck_profile_credits_non_negative'),
    )

    # ========================================================================
    # Create sessions table
    # ========================================================================
    op.create_table(
        'sessions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('avatar_id', sa.String(255), nullable=False),
        sa.Column('voice_id', sa.String(255), nullable=True),
        sa.Column('context_id', sa.String(255), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('session_token', sa.Text(), nullable=False),
        sa.Column('vendor_session_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('minutes_used', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('duration_minutes >= 1', name='ck_session_duration_positive'),
        sa.CheckConstraint("status IN ('active', 'terminated', 'cleaned')", name='ck_session_status'),
        sa.CheckConstraint(
            'minutes_used IS NULL OR (minutes_used >= 1 AND minutes_used <= duration_minutes)',
            name='ck_session_minutes_used_range',
        ),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_sessions_profile', ondelete='CASCADE'),
    )
    op.create_index('idx_sessions_user_id', 'sessions', ['user_id'])
    op.create_index('idx_sessions_status_end_time', 'sessions', ['status', 'end_time'])

    # ========================================================================
    # Create payments table
    # ========================================================================
    op.create_table(
        'payments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('package_minutes', sa.Integer(), nullable=False),
        sa.Column('amount_eur', sa.Numeric(10, 2), nullable=False),
        sa.Column('price_per_minute_eur', sa.Numeric(10, 4), nullable=False),
        sa.Column('payment_reference', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('package_minutes > 0', name='ck_payment_minutes_positive'),
        sa.UniqueConstraint('payment_reference', name='uq_payment_reference'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_payments_profile', ondelete='RESTRICT'),
    )
    op.create_index('idx_payments_user_id', 'payments', ['user_id'])

    # ========================================================================
    # Create credit_transactions table
    # ========================================================================
    op.create_table(
        'credit_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('minutes', sa.BigInteger(), nullable=False),
        sa.Column('balance_before', sa.BigInteger(), nullable=False),
        sa.Column('balance_after', sa.BigInteger(), nullable=False),
        sa.Column('session_id', UUID(as_uuid=True), nullable=True),
        sa.Column('payment_reference', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('minutes >= 0', name='ck_credit_tx_minutes_non_negative'),
        sa.CheckConstraint('balance_after >= 0', name='ck_credit_tx_balance_non_negative'),
        sa.CheckConstraint(
            "kind IN ('reservation', 'release', 'settlement', 'top_up')",
            name='ck_credit_tx_kind',
        ),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], name='fk_credit_tx_profile', ondelete='CASCADE'),
    )
    op.create_index('idx_credit_tx_user_created', 'credit_transactions', ['user_id', 'created_at'])

    # ========================================================================
    # Create app_settings table
    # ========================================================================
    op.create_table(
        'app_settings',
        sa.Column('key', sa.String(100), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.execute("INSERT INTO app_settings (key, value) VALUES ('price_per_minute_eur', '1.5')")


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('app_settings')
    op.drop_index('idx_credit_tx_user_created', table_name='credit_transactions')
    op.drop_table('credit_transactions')
    op.drop_index('idx_payments_user_id', table_name='payments')
    op.drop_table('payments')
    op.drop_index('idx_sessions_status_end_time', table_name='sessions')
    op.drop_index('idx_sessions_user_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_table('profiles')
