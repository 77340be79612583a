"""Initial travel booking schema

Revision ID: 0001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade database schema."""
    # Create users table
    op.create_table('users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=False),
        sa.Column('last_name', sa.String(length=100), nullable=False),
        sa.Column('phone_number', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('country', sa.String(length=100), nullable=True),
        sa.Column('postal_code', sa.String(length=20), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=False),
        sa.Column('password_hash', sa.String(length=128), nullable=False),
        sa.Column('password_reset_token', sa.String(length=64), nullable=True),
        sa.Column('password_reset_expiry', sa.DateTime(), nullable=True),
        sa.Column('password_reset_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('length(email) > 0', name='ck_user_email_not_empty'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_status'), 'users', ['status'], unique=False)

    # Create travel_packages table
    op.create_table('travel_packages',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('destination', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('max_guests', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('price_amount', sa.Integer(), nullable=False),
        sa.Column('price_currency', sa.String(length=3), nullable=False),
        sa.Column('discounted_price_amount', sa.Integer(), nullable=True),
        sa.Column('discount_starts_at', sa.DateTime(), nullable=True),
        sa.Column('discount_ends_at', sa.DateTime(), nullable=True),
        sa.Column('available_rooms', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('available_rooms >= 0', name='ck_package_available_rooms_non_negative'),
        sa.CheckConstraint('price_amount >= 0', name='ck_package_price_amount_non_negative'),
        sa.CheckConstraint('length(price_currency) = 3', name='ck_package_price_currency_length'),
        sa.CheckConstraint('end_date >= start_date', name='ck_package_dates_ordered'),
        sa.CheckConstraint('max_guests > 0', name='ck_package_max_guests_positive'),
        sa.CheckConstraint(
            'discounted_price_amount IS NULL OR discounted_price_amount < price_amount',
            name='ck_package_discount_below_price'
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_travel_packages_destination'), 'travel_packages', ['destination'], unique=False)
    op.create_index(op.f('ix_travel_packages_start_date'), 'travel_packages', ['start_date'], unique=False)

    # Create bookings table
    op.create_table('bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('package_id', sa.Uuid(), nullable=False),
        sa.Column('booking_reference', sa.String(length=32), nullable=False),
        sa.Column('number_of_guests', sa.Integer(), nullable=False),
        sa.Column('number_of_rooms', sa.Integer(), nullable=False),
        sa.Column('rooms_reserved', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_price_amount', sa.Integer(), nullable=False),
        sa.Column('total_price_currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('number_of_guests > 0', name='ck_booking_guests_positive'),
        sa.CheckConstraint('number_of_rooms > 0', name='ck_booking_rooms_positive'),
        sa.CheckConstraint('number_of_rooms <= 10', name='ck_booking_rooms_max'),
        sa.CheckConstraint(
            'rooms_reserved >= 0 AND rooms_reserved <= number_of_rooms',
            name='ck_booking_rooms_reserved_range'
        ),
        sa.CheckConstraint('total_price_amount >= 0', name='ck_booking_total_non_negative'),
        sa.CheckConstraint('length(booking_reference) > 0', name='ck_booking_reference_not_empty'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['package_id'], ['travel_packages.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_bookings_booking_reference'), 'bookings', ['booking_reference'], unique=True)
    op.create_index(op.f('ix_bookings_package_id'), 'bookings', ['package_id'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_user_id'), 'bookings', ['user_id'], unique=False)

    # Create payments table
    op.create_table('payments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('method', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('transaction_id', sa.String(length=64), nullable=False),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('refunded_at', sa.DateTime(), nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=False),
        sa.Column('completed_date', sa.DateTime(), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_payment_amount_non_negative'),
        sa.CheckConstraint('length(transaction_id) > 0', name='ck_payment_transaction_id_not_empty'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_payments_booking_id'), 'payments', ['booking_id'], unique=False)
    op.create_index(op.f('ix_payments_transaction_id'), 'payments', ['transaction_id'], unique=False)

    # At most one completed payment per booking
    op.create_index(
        'uq_payment_completed_per_booking',
        'payments',
        ['booking_id'],
        unique=True,
        postgresql_where=sa.text("status = 'COMPLETED'"),
        sqlite_where=sa.text("status = 'COMPLETED'")
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index('uq_payment_completed_per_booking', table_name='payments')
    op.drop_index(op.f('ix_payments_transaction_id'), table_name='payments')
    op.drop_index(op.f('ix_payments_booking_id'), table_name='payments')
    op.drop_table('payments')

    op.drop_index(op.f('ix_bookings_user_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_status'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_package_id'), table_name='bookings')
    op.drop_index(op.f('ix_bookings_booking_reference'), table_name='bookings')
    op.drop_table('bookings')

    op.drop_index(op.f('ix_travel_packages_start_date'), table_name='travel_packages')
    op.drop_index(op.f('ix_travel_packages_destination'), table_name='travel_packages')
    op.drop_table('travel_packages')

    op.drop_index(op.f('ix_users_status'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
