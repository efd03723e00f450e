"""initial raffle schema

Revision ID: 0001_initial_raffle_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '0001_initial_raffle_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('payment_integrations_config', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_profiles_id', 'profiles', ['id'])

    op.create_table(
        'campaigns',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('total_tickets', sa.Integer(), nullable=False),
        sa.Column('ticket_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='draft'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_integrations', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_campaigns_id', 'campaigns', ['id'])
    op.create_index('ix_campaigns_user_id', 'campaigns', ['user_id'])
    op.create_index('ix_campaigns_status', 'campaigns', ['status'])
    op.create_index('ix_campaigns_status_expires_at', 'campaigns', ['status', 'expires_at'])

    op.create_table(
        'tickets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'campaign_id',
            sa.String(),
            sa.ForeignKey('campaigns.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('quota_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='disponível'),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('customer_email', sa.String(), nullable=True),
        sa.Column('customer_phone', sa.String(), nullable=True),
        sa.Column('reserved_at', sa.DateTime(), nullable=True),
        sa.Column('bought_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('campaign_id', 'quota_number', name='uq_tickets_campaign_quota'),
    )
    op.create_index('ix_tickets_id', 'tickets', ['id'])
    op.create_index('ix_tickets_user_id', 'tickets', ['user_id'])
    op.create_index('ix_tickets_campaign_status', 'tickets', ['campaign_id', 'status'])
    op.create_index('ix_tickets_status_reserved_at', 'tickets', ['status', 'reserved_at'])

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column(
            'campaign_id',
            sa.String(),
            sa.ForeignKey('campaigns.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('provider', sa.String(), nullable=False),
        sa.Column('purpose', sa.String(), nullable=False, server_default='tickets'),
        sa.Column('external_reference', sa.String(), nullable=True),
        sa.Column('provider_transaction_id', sa.String(), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(), nullable=False, server_default='BRL'),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('provider_status', sa.String(), nullable=True),
        sa.Column('qr_code', sa.String(), nullable=True),
        sa.Column('qr_code_base64', sa.String(), nullable=True),
        sa.Column('payment_url', sa.String(), nullable=True),
        sa.Column('payer', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_payments_id', 'payments', ['id'])
    op.create_index('ix_payments_campaign_id', 'payments', ['campaign_id'])
    op.create_index('ix_payments_external_reference', 'payments', ['external_reference'])
    op.create_index('ix_payments_provider_txn', 'payments', ['provider', 'provider_transaction_id'])

    op.create_table(
        'cleanup_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('operation_type', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=True),
        sa.Column('campaign_title', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_cleanup_logs_id', 'cleanup_logs', ['id'])
    op.create_index('ix_cleanup_logs_operation_type', 'cleanup_logs', ['operation_type'])
    op.create_index('ix_cleanup_logs_campaign_id', 'cleanup_logs', ['campaign_id'])
    op.create_index('ix_cleanup_logs_created_at', 'cleanup_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('cleanup_logs')
    op.drop_table('payments')
    op.drop_table('tickets')
    op.drop_table('campaigns')
    op.drop_table('profiles')
