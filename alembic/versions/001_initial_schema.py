"""Initial schema: user subscriptions and billing audit log

Revision ID: 001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # One row per user, keyed by the application user id
    op.create_table(
        'user_subscriptions',
        sa.Column('user_id', sa.String(), primary_key=True),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('subscription_id', sa.String(), nullable=True),
        sa.Column('subscription_status', sa.String(), nullable=False, server_default='none'),
        sa.Column('is_premium_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('premium_since', sa.DateTime(), nullable=True),
        sa.Column('premium_until', sa.DateTime(), nullable=True),
        sa.Column('last_event_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    # At most one user per Stripe customer
    op.create_index('ix_user_subscriptions_stripe_customer_id', 'user_subscriptions', ['stripe_customer_id'], unique=True)
    op.create_index('ix_user_subscriptions_subscription_id', 'user_subscriptions', ['subscription_id'])
    op.create_index('ix_user_subscriptions_subscription_status', 'user_subscriptions', ['subscription_status'])
    op.create_index('ix_user_subscriptions_updated_at', 'user_subscriptions', ['updated_at'])

    op.create_table(
        'billing_audit_log',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('event_id', sa.String(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('outcome', sa.Enum(
            'processed',
            'ignored',
            'missing_identity',
            'unknown_customer',
            'ambiguous_customer',
            'persistence_failed',
            name='auditoutcome',
        ), nullable=False),
        sa.Column('user_id', sa.String(), nullable=True),
        sa.Column('stripe_customer_id', sa.String(), nullable=True),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_billing_audit_log_event_id', 'billing_audit_log', ['event_id'])
    op.create_index('ix_billing_audit_log_event_type', 'billing_audit_log', ['event_type'])
    op.create_index('ix_billing_audit_log_outcome', 'billing_audit_log', ['outcome'])
    op.create_index('ix_billing_audit_log_user_id', 'billing_audit_log', ['user_id'])
    op.create_index('ix_billing_audit_log_stripe_customer_id', 'billing_audit_log', ['stripe_customer_id'])
    op.create_index('ix_billing_audit_log_created_at', 'billing_audit_log', ['created_at'])


def downgrade() -> None:
    op.drop_table('billing_audit_log')
    sa.Enum(name='auditoutcome').drop(op.get_bind(), checkfirst=True)
    op.drop_table('user_subscriptions')
