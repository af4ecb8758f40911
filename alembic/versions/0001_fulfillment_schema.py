"""Fulfillment schema: orders, delivery assignment, payments and settlements

Revision ID: 0001_fulfillment_schema
Revises:
Create Date: 2025-01-15 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001_fulfillment_schema'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum('ADMIN', 'CUSTOMER', 'VENDOR', 'VENDOR_PLUS', 'VENDOR_PRO', 'DELIVERY', 'ORDER_MANAGER', 'SUPPORT', name='userrole')
order_status = sa.Enum('PENDING', 'PROCESSING', 'ASSIGNED', 'PICKED_UP', 'IN_TRANSIT', 'DELIVERED', 'CANCELLED', 'RETURNED', name='orderstatus')
confirmation_status = sa.Enum('PENDING', 'CONFIRMED', 'REJECTED', name='confirmationstatus')
payment_method = sa.Enum('CASH', 'CARD', 'TRANSFER', name='paymentmethod')
assignment_status = sa.Enum('ASSIGNED', 'COMPLETED', 'CANCELLED', name='assignmentstatus')
claim_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'CANCELLED', name='claimstatus')
tracking_status = sa.Enum('PENDING', 'PROCESSING', 'ASSIGNED', 'PICKED_UP', 'IN_TRANSIT', 'DELIVERED', 'FAILED', 'CANCELLED', 'RETURNED', 'CLAIM_CANCELLED', name='trackingstatus')
earning_status = sa.Enum('PENDING', 'COMPLETED', 'CANCELLED', name='earningstatus')
payment_status = sa.Enum('PENDING', 'PENDING_COD', 'PAID', 'FAILED', 'REFUNDED', name='paymentstatus')
vendor_payment_status = sa.Enum('PENDING', 'APPROVED', 'PAID', name='vendorpaymentstatus')
notification_type = sa.Enum('ORDER', 'DELIVERY', 'PAYMENT', 'VENDOR_PAYMENT', 'SYSTEM', name='notificationtype')

def upgrade():
    op.create_table('vendor_types',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    op.create_table('users',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('vendor_type_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['vendor_type_id'], ['vendor_types.id'], )
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_phone', 'users', ['phone'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table('subscription_packages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('vendor_type_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('duration_months', sa.Integer(), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['vendor_type_id'], ['vendor_types.id'], )
    )

    op.create_table('vendor_subscriptions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('vendor_id', sa.String(), nullable=False),
        sa.Column('package_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('starts_at', sa.DateTime(), nullable=True),
        sa.Column('ends_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['vendor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['package_id'], ['subscription_packages.id'], )
    )
    op.create_index('ix_vendor_subscriptions_vendor_id', 'vendor_subscriptions', ['vendor_id'])

    op.create_table('products',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('vendor_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('final_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['vendor_id'], ['users.id'], ),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative')
    )
    op.create_index('ix_products_vendor_id', 'products', ['vendor_id'])

    op.create_table('coupons',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('min_order_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('max_uses', sa.Integer(), nullable=True),
        sa.Column('used_count', sa.Integer(), nullable=False),
        sa.Column('expire_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)

    op.create_table('delivery_zones',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('delivery_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('estimated_delivery_hours', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('delivery_personnel',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('zone_id', sa.Integer(), nullable=True),
        sa.Column('vehicle_type', sa.String(50), nullable=True),
        sa.Column('vehicle_number', sa.String(50), nullable=True),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        sa.Column('is_verified', sa.Boolean(), nullable=False),
        sa.Column('rating', sa.Float(), nullable=False),
        sa.Column('total_deliveries', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['zone_id'], ['delivery_zones.id'], ),
        sa.UniqueConstraint('user_id')
    )
    op.create_index('ix_delivery_personnel_zone_id', 'delivery_personnel', ['zone_id'])

    op.create_table('orders',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('customer_id', sa.String(), nullable=False),
        sa.Column('vendor_id', sa.String(), nullable=False),
        sa.Column('split_group_id', sa.String(36), nullable=False),
        sa.Column('coupon_id', sa.String(), nullable=True),
        sa.Column('total', sa.Numeric(10, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount', sa.Numeric(10, 2), nullable=False),
        sa.Column('delivery_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('status', order_status, nullable=False),
        sa.Column('confirmation_status', confirmation_status, nullable=False),
        sa.Column('address_id', sa.String(), nullable=True),
        sa.Column('delivery_zone_id', sa.Integer(), nullable=True),
        sa.Column('delivery_id', sa.String(), nullable=True),
        sa.Column('delivery_confirmation_image', sa.String(500), nullable=True),
        sa.Column('delivery_confirmation_notes', sa.Text(), nullable=True),
        sa.Column('delivery_confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('placed_at', sa.DateTime(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(), nullable=True),
        sa.Column('in_transit_at', sa.DateTime(), nullable=True),
        sa.Column('estimated_delivery_time', sa.DateTime(), nullable=True),
        sa.Column('actual_delivery_time', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['vendor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ),
        sa.ForeignKeyConstraint(['delivery_zone_id'], ['delivery_zones.id'], ),
        sa.ForeignKeyConstraint(['delivery_id'], ['delivery_personnel.id'], )
    )
    for column in ('customer_id', 'vendor_id', 'split_group_id', 'status', 'delivery_zone_id', 'delivery_id', 'placed_at'):
        op.create_index(f'ix_orders_{column}', 'orders', [column])

    op.create_table('order_items',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('product_id', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], )
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table('delivery_assignments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('delivery_id', sa.String(), nullable=False),
        sa.Column('assigned_by', sa.String(), nullable=False),
        sa.Column('status', assignment_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['delivery_id'], ['delivery_personnel.id'], ),
        sa.ForeignKeyConstraint(['assigned_by'], ['users.id'], )
    )
    op.create_index(
        'uq_delivery_assignments_active_order', 'delivery_assignments', ['order_id'],
        unique=True,
        sqlite_where=sa.text("status != 'CANCELLED'"),
        postgresql_where=sa.text("status != 'CANCELLED'")
    )

    op.create_table('delivery_claim_requests',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('delivery_id', sa.String(), nullable=False),
        sa.Column('claim_status', claim_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['delivery_id'], ['delivery_personnel.id'], )
    )
    op.create_index(
        'uq_delivery_claims_active_order', 'delivery_claim_requests', ['order_id'],
        unique=True,
        sqlite_where=sa.text("claim_status IN ('PENDING', 'APPROVED')"),
        postgresql_where=sa.text("claim_status IN ('PENDING', 'APPROVED')")
    )

    op.create_table('delivery_tracking',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('delivery_id', sa.String(), nullable=True),
        sa.Column('status', tracking_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['delivery_id'], ['delivery_personnel.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], )
    )
    op.create_index('ix_delivery_tracking_order_id', 'delivery_tracking', ['order_id'])

    op.create_table('delivery_earnings',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('delivery_id', sa.String(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('zone_id', sa.Integer(), nullable=True),
        sa.Column('delivery_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('earnings_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', earning_status, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('earned_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['delivery_id'], ['delivery_personnel.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['zone_id'], ['delivery_zones.id'], )
    )
    op.create_index('ix_delivery_earnings_delivery_id', 'delivery_earnings', ['delivery_id'])

    op.create_table('payments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('method', payment_method, nullable=False),
        sa.Column('status', payment_status, nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.UniqueConstraint('order_id')
    )

    op.create_table('payment_confirmations',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('delivery_id', sa.String(), nullable=False),
        sa.Column('payment_received', sa.Numeric(10, 2), nullable=False),
        sa.Column('customer_signature', sa.String(500), nullable=True),
        sa.Column('delivery_photo', sa.String(500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['delivery_id'], ['delivery_personnel.id'], ),
        sa.UniqueConstraint('order_id')
    )

    op.create_table('vendor_payments',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('vendor_id', sa.String(), nullable=False),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('commission_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('net_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('payment_status', vendor_payment_status, nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('transaction_id', sa.String(100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['vendor_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.UniqueConstraint('order_id')
    )
    op.create_index('ix_vendor_payments_vendor_id', 'vendor_payments', ['vendor_id'])
    op.create_index('ix_vendor_payments_payment_status', 'vendor_payments', ['payment_status'])

    op.create_table('notifications',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('event_kind', sa.String(100), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', notification_type, nullable=False),
        sa.Column('related_id', sa.String(), nullable=True),
        sa.Column('related_type', sa.String(50), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=True),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], )
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

def downgrade():
    for table in (
        'notifications', 'vendor_payments', 'payment_confirmations', 'payments',
        'delivery_earnings', 'delivery_tracking', 'delivery_claim_requests',
        'delivery_assignments', 'order_items', 'orders', 'delivery_personnel',
        'delivery_zones', 'coupons', 'products', 'vendor_subscriptions',
        'subscription_packages', 'users', 'vendor_types'
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in (
        notification_type, vendor_payment_status, payment_status, earning_status,
        tracking_status, claim_status, assignment_status, payment_method,
        confirmation_status, order_status, user_role
    ):
        enum_type.drop(bind, checkfirst=True)
