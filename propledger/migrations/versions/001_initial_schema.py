"""Initial ledger schema.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create ledger tables and their partial unique indexes."""
    # Lookups
    op.create_table(
        'accounts',
        *_timestamps(),
        sa.Column('name', sa.String(100), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_account_name', 'accounts', ['name'])

    op.create_table(
        'users',
        *_timestamps(),
        sa.Column('account_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_account_id', 'users', ['account_id'])
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'tenants',
        *_timestamps(),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_tenants_account_id', 'tenants', ['account_id'])

    op.create_table(
        'properties',
        *_timestamps(),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('address', sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_properties_account_id', 'properties', ['account_id'])

    op.create_table(
        'units',
        *_timestamps(),
        sa.Column('property_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('rent_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_units_property_id', 'units', ['property_id'])
    op.create_index('idx_unit_property_status', 'units', ['property_id', 'status'])

    # Metering
    op.create_table(
        'utility_types',
        *_timestamps(),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('unit_rate', sa.Numeric(precision=12, scale=4), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_utility_types_account_id', 'utility_types', ['account_id'])

    op.create_table(
        'meters',
        *_timestamps(),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('utility_type_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ),
        sa.ForeignKeyConstraint(['utility_type_id'], ['utility_types.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_meters_account_id', 'meters', ['account_id'])
    op.create_index('ix_meters_property_id', 'meters', ['property_id'])
    op.create_index('ix_meters_utility_type_id', 'meters', ['utility_type_id'])

    op.create_table(
        'submeters',
        *_timestamps(),
        sa.Column('meter_id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.ForeignKeyConstraint(['meter_id'], ['meters.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_submeters_meter_id', 'submeters', ['meter_id'])
    op.create_index('ix_submeters_unit_id', 'submeters', ['unit_id'])

    # Billing
    op.create_table(
        'expense_categories',
        *_timestamps(),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('type', sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_expense_categories_account_id', 'expense_categories', ['account_id'])

    op.create_table(
        'bills',
        *_timestamps(),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('invoice_no', sa.Integer(), nullable=False),
        sa.Column('billing_period_start', sa.Date(), nullable=False),
        sa.Column('billing_period_end', sa.Date(), nullable=False),
        sa.Column('rent_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_utility_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('other_charges_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('amount_paid', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=True),
        sa.Column('payment_status', sa.String(32), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bills_account_id', 'bills', ['account_id'])
    op.create_index('ix_bills_tenant_id', 'bills', ['tenant_id'])
    op.create_index('ix_bills_unit_id', 'bills', ['unit_id'])
    op.create_index('ix_bills_payment_status', 'bills', ['payment_status'])
    op.create_index('ix_bills_is_deleted', 'bills', ['is_deleted'])
    op.create_index('idx_bill_unit_period', 'bills', ['unit_id', 'billing_period_start', 'billing_period_end'])
    op.create_index('idx_bill_account_issue', 'bills', ['account_id', 'issue_date'])

    op.create_table(
        'expenses',
        *_timestamps(),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('expense_type', sa.String(32), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['expense_categories.id'], ),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_expenses_account_id', 'expenses', ['account_id'])
    op.create_index('ix_expenses_user_id', 'expenses', ['user_id'])
    op.create_index('ix_expenses_unit_id', 'expenses', ['unit_id'])
    op.create_index('ix_expenses_property_id', 'expenses', ['property_id'])
    op.create_index('ix_expenses_category_id', 'expenses', ['category_id'])
    op.create_index('ix_expenses_bill_id', 'expenses', ['bill_id'])
    op.create_index('ix_expenses_expense_date', 'expenses', ['expense_date'])
    op.create_index('idx_expense_unit_date', 'expenses', ['unit_id', 'expense_date'])

    op.create_table(
        'payments',
        *_timestamps(),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('payment_method', sa.String(32), nullable=False),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_bill_id', 'payments', ['bill_id'])
    op.create_index('ix_payments_account_id', 'payments', ['account_id'])
    op.create_index('ix_payments_tenant_id', 'payments', ['tenant_id'])
    op.create_index('ix_payments_payment_date', 'payments', ['payment_date'])
    op.create_index('ix_payments_transaction_id', 'payments', ['transaction_id'])
    op.create_index('idx_payment_bill_live', 'payments', ['bill_id', 'is_deleted'])

    op.create_table(
        'meter_readings',
        *_timestamps(),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('meter_id', sa.Integer(), nullable=False),
        sa.Column('submeter_id', sa.Integer(), nullable=True),
        sa.Column('reading_value', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('reading_date', sa.Date(), nullable=False),
        sa.Column('consumption', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('entered_by_user_id', sa.Integer(), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.ForeignKeyConstraint(['meter_id'], ['meters.id'], ),
        sa.ForeignKeyConstraint(['submeter_id'], ['submeters.id'], ),
        sa.ForeignKeyConstraint(['entered_by_user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_meter_readings_account_id', 'meter_readings', ['account_id'])
    op.create_index('ix_meter_readings_meter_id', 'meter_readings', ['meter_id'])
    op.create_index('ix_meter_readings_submeter_id', 'meter_readings', ['submeter_id'])
    op.create_index(
        'idx_meter_readings_pair_order',
        'meter_readings',
        ['meter_id', 'submeter_id', 'reading_date'],
    )
    # One live reading per (meter, submeter-or-none, date)
    op.create_index(
        'uq_meter_readings_pair_date',
        'meter_readings',
        ['meter_id', sa.text('coalesce(submeter_id, 0)'), 'reading_date'],
        unique=True,
        sqlite_where=sa.text('is_deleted = 0'),
        postgresql_where=sa.text('is_deleted = false'),
    )

    # Leasing
    op.create_table(
        'leases',
        *_timestamps(),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('property_id', sa.Integer(), nullable=True),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('lease_no', sa.Integer(), nullable=False),
        sa.Column('lease_start_date', sa.Date(), nullable=False),
        sa.Column('lease_end_date', sa.Date(), nullable=True),
        sa.Column('move_in_date', sa.Date(), nullable=True),
        sa.Column('move_out_date', sa.Date(), nullable=True),
        sa.Column('started_meter_reading', sa.Numeric(precision=14, scale=3), nullable=True),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['property_id'], ['properties.id'], ),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_leases_unit_id', 'leases', ['unit_id'])
    op.create_index('ix_leases_tenant_id', 'leases', ['tenant_id'])
    op.create_index('ix_leases_property_id', 'leases', ['property_id'])
    op.create_index('ix_leases_account_id', 'leases', ['account_id'])
    op.create_index('ix_leases_status', 'leases', ['status'])
    op.create_index('idx_lease_account_start', 'leases', ['account_id', 'lease_start_date'])
    # One active lease per unit
    op.create_index(
        'uq_leases_unit_active',
        'leases',
        ['unit_id'],
        unique=True,
        sqlite_where=sa.text("status = 'active'"),
        postgresql_where=sa.text("status = 'active'"),
    )

    # Audit
    op.create_table(
        'audit_logs',
        *_timestamps(),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('changes', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_audit_entity', 'audit_logs', ['entity_type', 'entity_id'])


def downgrade() -> None:
    """Drop ledger tables in reverse dependency order."""
    op.drop_table('audit_logs')
    op.drop_index('uq_leases_unit_active', table_name='leases')
    op.drop_table('leases')
    op.drop_index('uq_meter_readings_pair_date', table_name='meter_readings')
    op.drop_table('meter_readings')
    op.drop_table('payments')
    op.drop_table('expenses')
    op.drop_table('bills')
    op.drop_table('expense_categories')
    op.drop_table('submeters')
    op.drop_table('meters')
    op.drop_table('utility_types')
    op.drop_table('units')
    op.drop_table('properties')
    op.drop_table('tenants')
    op.drop_table('users')
    op.drop_table('accounts')
