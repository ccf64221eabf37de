"""Create group formation, ledger and payment tables.

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18

Initial schema: plans, groups, participants, ledger, commissions, payment
deduplication, outbox and withdrawal requests.
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261018_000001'
down_revision = None
branch_labels = None
depends_on = None


def _money() -> sa.DECIMAL:
    return sa.DECIMAL(precision=18, scale=2)


def _now() -> sa.sql.elements.TextClause:
    return sa.text('CURRENT_TIMESTAMP')


def upgrade() -> None:
    """Create core tables."""
    op.create_table(
        'plans',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('full_price', _money(), nullable=False),
        sa.Column('entry_price', _money(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('duration_days', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.CheckConstraint('entry_price > 0', name='ck_plans_entry_price_positive'),
        sa.CheckConstraint('entry_price <= full_price', name='ck_plans_entry_price_not_above_full'),
        sa.CheckConstraint('capacity >= 2', name='ck_plans_capacity_min'),
        sa.PrimaryKeyConstraint('id', name='pk_plans'),
    )

    op.create_table(
        'groups',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('plan_id', sa.Integer(), nullable=False),
        sa.Column('referral_code', sa.String(length=20), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='forming'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_by_user_id', sa.BigInteger(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('contemplated_participant_id', sa.Integer(), nullable=True),
        sa.Column('contemplated_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('capacity >= 2', name='ck_groups_capacity_min'),
        sa.CheckConstraint('version >= 0', name='ck_groups_version_non_negative'),
        sa.ForeignKeyConstraint(
            ['plan_id'], ['plans.id'],
            name='fk_groups_plan_id_plans', ondelete='RESTRICT',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_groups'),
    )
    op.create_index('ix_groups_plan_id', 'groups', ['plan_id'])
    op.create_index('ix_groups_referral_code', 'groups', ['referral_code'], unique=True)
    op.create_index('ix_groups_state', 'groups', ['state'])
    op.create_index('ix_groups_created_by_user_id', 'groups', ['created_by_user_id'])
    op.create_index('idx_groups_plan_state', 'groups', ['plan_id', 'state'])

    op.create_table(
        'participants',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('group_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending_payment'),
        sa.Column('referred_by', sa.Integer(), nullable=True),
        sa.Column('external_payment_ref', sa.String(length=255), nullable=True),
        sa.Column('enrolled_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('position >= 1', name='ck_participants_position_positive'),
        sa.ForeignKeyConstraint(
            ['group_id'], ['groups.id'],
            name='fk_participants_group_id_groups', ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['referred_by'], ['participants.id'],
            name='fk_participants_referred_by_participants', ondelete='RESTRICT',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_participants'),
        sa.UniqueConstraint('group_id', 'position', name='uq_participants_group_position'),
    )
    op.create_index('ix_participants_group_id', 'participants', ['group_id'])
    op.create_index('ix_participants_user_id', 'participants', ['user_id'])
    op.create_index('ix_participants_referred_by', 'participants', ['referred_by'])
    op.create_index('idx_participants_group_status', 'participants', ['group_id', 'payment_status'])
    op.create_index('idx_participants_status_enrolled', 'participants', ['payment_status', 'enrolled_at'])

    op.create_table(
        'user_balances',
        sa.Column('user_id', sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column('balance', _money(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.CheckConstraint('balance >= 0', name='ck_user_balances_balance_non_negative'),
        sa.PrimaryKeyConstraint('user_id', name='pk_user_balances'),
    )

    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False),
        sa.Column('amount', _money(), nullable=False),
        sa.Column('balance_after', _money(), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.CheckConstraint('amount <> 0', name='ck_credit_transactions_amount_non_zero'),
        sa.PrimaryKeyConstraint('id', name='pk_credit_transactions'),
    )
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'])
    op.create_index('ix_credit_transactions_reference', 'credit_transactions', ['reference'])
    op.create_index('idx_credit_transactions_user_created', 'credit_transactions', ['user_id', 'created_at'])

    op.create_table(
        'commissions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('source_payment_id', sa.String(length=255), nullable=False),
        sa.Column('payer_participant_id', sa.Integer(), nullable=False),
        sa.Column('payee_participant_id', sa.Integer(), nullable=False),
        sa.Column('payee_user_id', sa.BigInteger(), nullable=False),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('rate', sa.Numeric(precision=5, scale=4), nullable=False),
        sa.Column('amount', _money(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.CheckConstraint('level >= 1', name='ck_commissions_level_positive'),
        sa.CheckConstraint('amount > 0', name='ck_commissions_amount_positive'),
        sa.ForeignKeyConstraint(
            ['payer_participant_id'], ['participants.id'],
            name='fk_commissions_payer_participant_id_participants', ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['payee_participant_id'], ['participants.id'],
            name='fk_commissions_payee_participant_id_participants', ondelete='RESTRICT',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_commissions'),
        sa.UniqueConstraint(
            'source_payment_id', 'payee_user_id', 'level',
            name='uq_commissions_source_payee_level',
        ),
        sa.UniqueConstraint('payer_participant_id', 'level', name='uq_commissions_payer_level'),
    )
    op.create_index('ix_commissions_source_payment_id', 'commissions', ['source_payment_id'])
    op.create_index('ix_commissions_payer_participant_id', 'commissions', ['payer_participant_id'])
    op.create_index('ix_commissions_payee_user_id', 'commissions', ['payee_user_id'])

    op.create_table(
        'processed_payment_refs',
        sa.Column('external_ref', sa.String(length=255), nullable=False),
        sa.Column('participant_id', sa.Integer(), nullable=False),
        sa.Column('amount', _money(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='processing'),
        sa.Column('outcome', sa.String(length=40), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.PrimaryKeyConstraint('external_ref', name='pk_processed_payment_refs'),
    )
    op.create_index(
        'idx_processed_payment_refs_status_updated',
        'processed_payment_refs', ['status', 'updated_at'],
    )

    op.create_table(
        'outbox_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_type', sa.String(length=40), nullable=False),
        sa.Column('aggregate_id', sa.Integer(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('published_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id', name='pk_outbox_events'),
    )
    op.create_index('idx_outbox_events_pending', 'outbox_events', ['published_at', 'id'])

    op.create_table(
        'withdrawal_requests',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('amount', _money(), nullable=False),
        sa.Column('pix_key', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('payout_ref', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('amount > 0', name='ck_withdrawal_requests_amount_positive'),
        sa.PrimaryKeyConstraint('id', name='pk_withdrawal_requests'),
    )
    op.create_index('ix_withdrawal_requests_user_id', 'withdrawal_requests', ['user_id'])
    op.create_index('ix_withdrawal_requests_status', 'withdrawal_requests', ['status'])
    op.create_index(
        'uq_withdrawal_requests_user_pending',
        'withdrawal_requests',
        ['user_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    """Drop core tables."""
    op.drop_table('withdrawal_requests')
    op.drop_table('outbox_events')
    op.drop_table('processed_payment_refs')
    op.drop_table('commissions')
    op.drop_table('credit_transactions')
    op.drop_table('user_balances')
    op.drop_table('participants')
    op.drop_table('groups')
    op.drop_table('plans')
