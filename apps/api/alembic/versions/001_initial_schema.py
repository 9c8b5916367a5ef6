"""initial payment schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-11-03 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create projects, credentials, transactions and the bookkeeping tables."""

    op.create_table(
        'projects',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(160), nullable=False),
        sa.Column('app_slug', sa.String(40), nullable=False, unique=True),
        sa.Column('webhook_url', sa.String(2048), nullable=True),
        sa.Column('webhook_secret', sa.String(128), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('payout_bank_name', sa.String(120), nullable=True),
        sa.Column('payout_account_name', sa.String(160), nullable=True),
        sa.Column('payout_account_number', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=False), nullable=False),
    )

    op.create_table(
        'api_keys',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'project_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('projects.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('key_prefix', sa.String(32), nullable=False),
        sa.Column('key_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('revoked_at', sa.DateTime(timezone=False), nullable=True),
        sa.Column('last_used_at', sa.DateTime(timezone=False), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index('ix_api_keys_project_id', 'api_keys', ['project_id'])

    op.create_table(
        'transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'project_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('projects.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('external_id', sa.String(191), nullable=False),
        sa.Column('gateway_order_id', sa.String(191), nullable=False, unique=True),
        sa.Column('method', sa.String(32), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('amount', sa.BigInteger(), nullable=False),
        sa.Column('fee', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('platform_fee', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('provider_fee', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_payment', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('payment_number', sa.String(191), nullable=True),
        sa.Column('qr_string', sa.Text(), nullable=True),
        sa.Column('qr_image_url', sa.String(2048), nullable=True),
        sa.Column('expired_at', sa.DateTime(timezone=False), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=False), nullable=True),
        sa.Column('gateway_status', sa.String(64), nullable=True),
        sa.Column('gateway_completed_at', sa.DateTime(timezone=False), nullable=True),
        sa.Column('gateway_raw', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=False), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index('ix_transactions_project_id', 'transactions', ['project_id'])
    op.create_index('ix_transactions_project_created', 'transactions', ['project_id', 'created_at'])
    op.create_index('ix_transactions_status_updated', 'transactions', ['status', 'updated_at'])

    op.create_table(
        'idempotency_records',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('key', sa.String(255), nullable=False),
        sa.Column('request_hash', sa.String(64), nullable=False),
        sa.Column('response_status', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('lease_expires_at', sa.DateTime(timezone=False), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=False), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=False), nullable=True),
        sa.UniqueConstraint('project_id', 'key', name='uq_idempotency_project_key'),
    )
    op.create_index('ix_idempotency_records_project_id', 'idempotency_records', ['project_id'])

    op.create_table(
        'rate_limit_windows',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('route_key', sa.String(128), nullable=False),
        sa.Column('window_start', sa.BigInteger(), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint(
            'project_id', 'route_key', 'window_start', name='uq_rate_project_route_window'
        ),
    )

    op.create_table(
        'webhook_logs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('transaction_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('event_id', sa.String(64), nullable=False),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('attempt_no', sa.Integer(), nullable=False),
        sa.Column('target_url', sa.String(2048), nullable=False),
        sa.Column('request_body', sa.Text(), nullable=False),
        sa.Column('response_code', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.String(4000), nullable=True),
        sa.Column('error_message', sa.String(4000), nullable=True),
        sa.Column('is_success', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('duration_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index('ix_webhook_logs_transaction_id', 'webhook_logs', ['transaction_id'])
    op.create_index('ix_webhook_logs_project_created', 'webhook_logs', ['project_id', 'created_at'])

    op.create_table(
        'withdrawals',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'project_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('projects.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('amount_gross', sa.BigInteger(), nullable=False),
        sa.Column('amount_fee', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('amount_net', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('payout_bank_name', sa.String(120), nullable=True),
        sa.Column('payout_account_name', sa.String(160), nullable=True),
        sa.Column('payout_account_number', sa.String(64), nullable=True),
        sa.Column('note', sa.String(1024), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=False), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=False), nullable=False),
    )
    op.create_index('ix_withdrawals_project_id', 'withdrawals', ['project_id'])


def downgrade() -> None:
    """Drop every table created by this revision."""

    op.drop_index('ix_withdrawals_project_id', table_name='withdrawals')
    op.drop_table('withdrawals')
    op.drop_index('ix_webhook_logs_project_created', table_name='webhook_logs')
    op.drop_index('ix_webhook_logs_transaction_id', table_name='webhook_logs')
    op.drop_table('webhook_logs')
    op.drop_table('rate_limit_windows')
    op.drop_index('ix_idempotency_records_project_id', table_name='idempotency_records')
    op.drop_table('idempotency_records')
    op.drop_index('ix_transactions_status_updated', table_name='transactions')
    op.drop_index('ix_transactions_project_created', table_name='transactions')
    op.drop_index('ix_transactions_project_id', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_api_keys_project_id', table_name='api_keys')
    op.drop_table('api_keys')
    op.drop_table('projects')
