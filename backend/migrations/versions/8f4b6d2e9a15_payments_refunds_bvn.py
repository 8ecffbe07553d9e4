"""payments, refund ledger and bvn verifications

Revision ID: 8f4b6d2e9a15
Revises: 3c9e1a7b2d40
Create Date: 2026-03-02 10:40:07.553912

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '8f4b6d2e9a15'
down_revision = '3c9e1a7b2d40'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('transaction_ref', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('vendor_id', sa.String(length=64), nullable=True),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('requested_amount', sa.Numeric(precision=14, scale=2), nullable=True),
        sa.Column('currency', sa.String(length=8), nullable=False, server_default='NGN'),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('product_type', sa.String(length=32), nullable=True),
        sa.Column('service_type', sa.String(length=32), nullable=True),
        sa.Column('is_wallet_top_up', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('item_id', sa.String(length=64), nullable=True),
        sa.Column('voucher_code', sa.String(length=64), nullable=True),
        sa.Column('meter_number', sa.String(length=32), nullable=True),
        sa.Column('destination_bank_code', sa.String(length=16), nullable=True),
        sa.Column('destination_account_number', sa.String(length=16), nullable=True),
        sa.Column('gateway', sa.String(length=32), nullable=True),
        sa.Column('gateway_reference', sa.String(length=128), nullable=True),
        sa.Column('gateway_transaction_id', sa.String(length=64), nullable=True),
        sa.Column('gateway_auth_mode', sa.String(length=32), nullable=True),
        sa.Column('payment_details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('finalized_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_transaction_ref'), ['transaction_ref'], unique=True)
        batch_op.create_index(batch_op.f('ix_payments_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_payment_method'), ['payment_method'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_gateway_reference'), ['gateway_reference'], unique=False)
        batch_op.create_index(batch_op.f('ix_payments_created_at'), ['created_at'], unique=False)

    op.create_table(
        'payment_refunds',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('payment_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('refund_reference', sa.String(length=64), nullable=False),
        sa.Column('gateway_reference', sa.String(length=128), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('refund_reference'),
    )
    with op.batch_alter_table('payment_refunds', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payment_refunds_payment_id'), ['payment_id'], unique=False)

    op.create_table(
        'bvn_verifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('transaction_ref', sa.String(length=128), nullable=False),
        sa.Column('bvn', sa.String(length=16), nullable=False),
        sa.Column('bank_name', sa.String(length=120), nullable=False),
        sa.Column('account_number', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('bank_account_linked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('response_details', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('bvn_verifications', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_bvn_verifications_user_id'), ['user_id'], unique=False)


def downgrade():
    with op.batch_alter_table('bvn_verifications', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_bvn_verifications_user_id'))
    op.drop_table('bvn_verifications')

    with op.batch_alter_table('payment_refunds', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_payment_refunds_payment_id'))
    op.drop_table('payment_refunds')

    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_payments_created_at'))
        batch_op.drop_index(batch_op.f('ix_payments_gateway_reference'))
        batch_op.drop_index(batch_op.f('ix_payments_status'))
        batch_op.drop_index(batch_op.f('ix_payments_payment_method'))
        batch_op.drop_index(batch_op.f('ix_payments_user_id'))
        batch_op.drop_index(batch_op.f('ix_payments_transaction_ref'))
    op.drop_table('payments')
