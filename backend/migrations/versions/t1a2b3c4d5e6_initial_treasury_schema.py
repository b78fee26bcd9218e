"""Initial treasury schema: operators, clinic reference data, cash sessions, transactions, liquidations, audit

Revision ID: t1a2b3c4d5e6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 't1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('username', sa.String(length=64), nullable=False),
    sa.Column('name', sa.String(length=128), nullable=False),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=True)

    op.create_table('patients',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('document_number', sa.String(length=32), nullable=True),
    sa.Column('full_name', sa.String(length=255), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('document_number'),
    sqlite_autoincrement=True
    )

    op.create_table('professionals',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('full_name', sa.String(length=255), nullable=False),
    sa.Column('commission_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )

    op.create_table('medical_services',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('code', sa.String(length=32), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('default_commission_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('code'),
    sqlite_autoincrement=True
    )

    op.create_table('service_requests',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('request_number', sa.String(length=32), nullable=False),
    sa.Column('patient_id', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('request_number'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('service_requests', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_service_requests_patient_id'), ['patient_id'], unique=False)

    op.create_table('service_request_details',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('service_request_id', sa.Integer(), nullable=False),
    sa.Column('medical_service_id', sa.Integer(), nullable=True),
    sa.Column('professional_id', sa.Integer(), nullable=True),
    sa.Column('professional_commission_percentage', sa.Numeric(precision=5, scale=2), nullable=True),
    sa.Column('scheduled_date', sa.Date(), nullable=True),
    sa.Column('total_amount_cents', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['medical_service_id'], ['medical_services.id'], ),
    sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], ),
    sa.ForeignKeyConstraint(['service_request_id'], ['service_requests.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('service_request_details', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_service_request_details_service_request_id'), ['service_request_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_service_request_details_medical_service_id'), ['medical_service_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_service_request_details_professional_id'), ['professional_id'], unique=False)

    op.create_table('cash_register_sessions',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('user_id', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(length=16), nullable=False),
    sa.Column('opening_date', sa.DateTime(timezone=True), nullable=False),
    sa.Column('closing_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('initial_amount_cents', sa.Integer(), nullable=False),
    sa.Column('total_income_cents', sa.Integer(), nullable=False),
    sa.Column('total_expenses_cents', sa.Integer(), nullable=False),
    sa.Column('calculated_balance_cents', sa.Integer(), nullable=False),
    sa.Column('final_physical_amount_cents', sa.Integer(), nullable=True),
    sa.Column('difference_cents', sa.Integer(), nullable=True),
    sa.Column('difference_justification', sa.Text(), nullable=True),
    sa.Column('authorized_by_user_id', sa.Integer(), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('version_id', sa.Integer(), nullable=False),
    sa.CheckConstraint("status IN ('open', 'closed')", name='ck_sessionstatus'),
    sa.ForeignKeyConstraint(['authorized_by_user_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('cash_register_sessions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_cash_register_sessions_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_register_sessions_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_cash_register_sessions_opening_date'), ['opening_date'], unique=False)
    op.create_index(
        'uq_cash_sessions_user_open', 'cash_register_sessions', ['user_id'], unique=True,
        sqlite_where=sa.text("status = 'open'"),
        postgresql_where=sa.text("status = 'open'"),
    )

    op.create_table('commission_liquidations',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('professional_id', sa.Integer(), nullable=False),
    sa.Column('period_start', sa.Date(), nullable=False),
    sa.Column('period_end', sa.Date(), nullable=False),
    sa.Column('total_services', sa.Integer(), nullable=False),
    sa.Column('gross_amount_cents', sa.Integer(), nullable=False),
    sa.Column('commission_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
    sa.Column('commission_amount_cents', sa.Integer(), nullable=False),
    sa.Column('status', sa.String(length=16), nullable=False),
    sa.Column('generated_by_user_id', sa.Integer(), nullable=False),
    sa.Column('approved_by_user_id', sa.Integer(), nullable=True),
    # FK to transactions added after that table exists
    sa.Column('payment_movement_id', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.Column('version_id', sa.Integer(), nullable=False),
    sa.CheckConstraint("status IN ('draft', 'approved', 'paid', 'cancelled')", name='ck_liquidationstatus'),
    sa.ForeignKeyConstraint(['approved_by_user_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['generated_by_user_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('commission_liquidations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_commission_liquidations_professional_id'), ['professional_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_commission_liquidations_status'), ['status'], unique=False)
        batch_op.create_index('ix_liquidations_professional_period', ['professional_id', 'period_start', 'period_end'], unique=False)

    op.create_table('transactions',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('cash_register_session_id', sa.Integer(), nullable=False),
    sa.Column('type', sa.String(length=16), nullable=False),
    sa.Column('category', sa.String(length=32), nullable=False),
    sa.Column('amount_cents', sa.Integer(), nullable=False),
    sa.Column('concept', sa.String(length=255), nullable=False),
    sa.Column('patient_id', sa.Integer(), nullable=True),
    sa.Column('professional_id', sa.Integer(), nullable=True),
    sa.Column('service_request_id', sa.Integer(), nullable=True),
    sa.Column('liquidation_id', sa.Integer(), nullable=True),
    sa.Column('commission_liquidation_id', sa.Integer(), nullable=True),
    sa.Column('original_transaction_id', sa.Integer(), nullable=True),
    sa.Column('status', sa.String(length=16), nullable=False),
    sa.Column('cancellation_reason', sa.Text(), nullable=True),
    sa.Column('cancelled_by_user_id', sa.Integer(), nullable=True),
    sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('void_reason', sa.Text(), nullable=True),
    sa.Column('voided_by_user_id', sa.Integer(), nullable=True),
    sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('user_id', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.CheckConstraint("type IN ('INCOME', 'EXPENSE')", name='ck_transactiontype'),
    sa.CheckConstraint(
        "category IN ('SERVICE_PAYMENT', 'SUPPLIER_PAYMENT', 'COMMISSION_LIQUIDATION', "
        "'CASH_DIFFERENCE', 'SERVICE_REFUND', 'OTHER')",
        name='ck_transactioncategory',
    ),
    sa.CheckConstraint("status IN ('active', 'cancelled', 'voided')", name='ck_transactionstatus'),
    sa.ForeignKeyConstraint(['cash_register_session_id'], ['cash_register_sessions.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
    sa.ForeignKeyConstraint(['professional_id'], ['professionals.id'], ),
    sa.ForeignKeyConstraint(['service_request_id'], ['service_requests.id'], ),
    sa.ForeignKeyConstraint(['liquidation_id'], ['commission_liquidations.id'], ),
    sa.ForeignKeyConstraint(['commission_liquidation_id'], ['commission_liquidations.id'], ),
    sa.ForeignKeyConstraint(['original_transaction_id'], ['transactions.id'], ),
    sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['voided_by_user_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_transactions_cash_register_session_id'), ['cash_register_session_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_category'), ['category'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_patient_id'), ['patient_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_service_request_id'), ['service_request_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_liquidation_id'), ['liquidation_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_commission_liquidation_id'), ['commission_liquidation_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_original_transaction_id'), ['original_transaction_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_transactions_user_id'), ['user_id'], unique=False)
        batch_op.create_index('ix_transactions_session_status', ['cash_register_session_id', 'status'], unique=False)
        batch_op.create_index('ix_transactions_professional_created', ['professional_id', 'created_at'], unique=False)
        batch_op.create_index('ix_transactions_type_created', ['type', 'created_at'], unique=False)

    with op.batch_alter_table('commission_liquidations', schema=None) as batch_op:
        batch_op.create_foreign_key('fk_liquidations_payment_movement', 'transactions', ['payment_movement_id'], ['id'])

    op.create_table('commission_liquidation_details',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('liquidation_id', sa.Integer(), nullable=False),
    sa.Column('service_request_id', sa.Integer(), nullable=False),
    sa.Column('patient_id', sa.Integer(), nullable=True),
    sa.Column('medical_service_id', sa.Integer(), nullable=False),
    sa.Column('service_date', sa.Date(), nullable=False),
    sa.Column('payment_date', sa.Date(), nullable=False),
    sa.Column('service_amount_cents', sa.Integer(), nullable=False),
    sa.Column('commission_percentage', sa.Numeric(precision=5, scale=2), nullable=False),
    sa.Column('commission_amount_cents', sa.Integer(), nullable=False),
    sa.Column('payment_movement_id', sa.Integer(), nullable=False),
    sa.ForeignKeyConstraint(['liquidation_id'], ['commission_liquidations.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['service_request_id'], ['service_requests.id'], ),
    sa.ForeignKeyConstraint(['patient_id'], ['patients.id'], ),
    sa.ForeignKeyConstraint(['medical_service_id'], ['medical_services.id'], ),
    sa.ForeignKeyConstraint(['payment_movement_id'], ['transactions.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('commission_liquidation_details', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_commission_liquidation_details_liquidation_id'), ['liquidation_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_commission_liquidation_details_payment_movement_id'), ['payment_movement_id'], unique=False)

    op.create_table('audit_logs',
    sa.Column('id', sa.Integer(), nullable=False),
    sa.Column('entity_type', sa.String(length=64), nullable=False),
    sa.Column('entity_id', sa.Integer(), nullable=False),
    sa.Column('event', sa.String(length=32), nullable=False),
    sa.Column('old_values', sa.JSON(), nullable=True),
    sa.Column('new_values', sa.JSON(), nullable=True),
    sa.Column('description', sa.Text(), nullable=True),
    sa.Column('user_id', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sqlite_autoincrement=True
    )
    with op.batch_alter_table('audit_logs', schema=None) as batch_op:
        batch_op.create_index('ix_audit_logs_entity', ['entity_type', 'entity_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_event'), ['event'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audit_logs_created_at'), ['created_at'], unique=False)


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('commission_liquidation_details')
    with op.batch_alter_table('commission_liquidations', schema=None) as batch_op:
        batch_op.drop_constraint('fk_liquidations_payment_movement', type_='foreignkey')
    op.drop_table('transactions')
    op.drop_table('commission_liquidations')
    op.drop_index('uq_cash_sessions_user_open', table_name='cash_register_sessions')
    op.drop_table('cash_register_sessions')
    op.drop_table('service_request_details')
    op.drop_table('service_requests')
    op.drop_table('medical_services')
    op.drop_table('professionals')
    op.drop_table('patients')
    op.drop_table('users')
