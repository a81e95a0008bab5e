"""Local store: tenants, catalog, trade documents, stock ledger

Revision ID: 20261019_local_store
Revises:
Create Date: 2026-10-19

Creates the single-file local store:
1. tenants (activation root, not synced)
2. Sync envelope on every syncable table: uuid (unique), tenant_id,
   last_updated_at, is_synced, is_deleted
3. Catalog: users, categories, units, suppliers, customers, settings,
   products, product_suppliers
4. Trade documents: sales (type = sale | purchase), sale_items, payments
5. stock_ledger (append-only; stock is SUM(quantity_delta))

No foreign keys: integrity is enforced by the service layer.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_local_store'
down_revision = None
branch_labels = None
depends_on = None


SYNCED_TABLES = [
    'users', 'categories', 'units', 'suppliers', 'customers', 'settings',
    'products', 'product_suppliers', 'sales', 'sale_items', 'payments', 'stock_ledger',
]


def _envelope():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('last_updated_at', sa.DateTime(), nullable=False),
        sa.Column('is_synced', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
    ]


def _envelope_constraints():
    return [
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
    ]


def upgrade():
    # ==========================================================================
    # 1. TENANTS
    # ==========================================================================
    op.create_table('tenants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('uuid', sa.String(length=36), nullable=False),
        sa.Column('license_key', sa.String(length=128), nullable=False),
        sa.Column('owner_email', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('activated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('uuid'),
        sa.UniqueConstraint('license_key'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 2. USERS AND CATALOG
    # ==========================================================================
    op.create_table('users',
        *_envelope(),
        sa.Column('username', sa.String(length=80), nullable=False),
        sa.Column('firstname', sa.String(length=120), nullable=False),
        sa.Column('lastname', sa.String(length=120), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_envelope_constraints(),
        sa.UniqueConstraint('username'),
        sqlite_autoincrement=True
    )

    op.create_table('categories',
        *_envelope(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_categories_parent_id'), ['parent_id'], unique=False)

    op.create_table('units',
        *_envelope(),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('abbreviation', sa.String(length=32), nullable=False),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )

    op.create_table('suppliers',
        *_envelope(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('contact_person', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('payment_terms', sa.String(length=255), nullable=True),
        sa.Column('credit_limit', sa.Float(), nullable=False),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )

    op.create_table('customers',
        *_envelope(),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=64), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('loyalty_points', sa.Integer(), nullable=False),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )

    op.create_table('settings',
        *_envelope(),
        sa.Column('setting_key', sa.String(length=128), nullable=False),
        sa.Column('setting_value', sa.Text(), nullable=True),
        *_envelope_constraints(),
        sa.UniqueConstraint('tenant_id', 'setting_key', name='uq_settings_tenant_key'),
        sqlite_autoincrement=True
    )

    op.create_table('products',
        *_envelope(),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('barcode', sa.String(length=128), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('product_type', sa.String(length=32), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('purchase_price', sa.Float(), nullable=False),
        sa.Column('selling_price', sa.Float(), nullable=False),
        sa.Column('tax_rate', sa.Float(), nullable=False),
        sa.Column('min_stock_level', sa.Float(), nullable=False),
        sa.Column('reorder_quantity', sa.Float(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_tenant_name', ['tenant_id', 'name'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_category_id'), ['category_id'], unique=False)

    op.create_table('product_suppliers',
        *_envelope(),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('supplier_product_code', sa.String(length=128), nullable=True),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_suppliers', schema=None) as batch_op:
        batch_op.create_index('ix_product_suppliers_pair', ['tenant_id', 'product_id', 'supplier_id'], unique=False)

    # ==========================================================================
    # 3. TRADE DOCUMENTS
    # ==========================================================================
    op.create_table('sales',
        *_envelope(),
        sa.Column('type', sa.String(length=16), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('subtotal', sa.Float(), nullable=False),
        sa.Column('tax', sa.Float(), nullable=False),
        sa.Column('discount', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_tenant_type_created', ['tenant_id', 'type', 'created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_customer_id'), ['customer_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_supplier_id'), ['supplier_id'], unique=False)

    op.create_table('sale_items',
        *_envelope(),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('supplier_product_code', sa.String(length=128), nullable=True),
        sa.Column('quantity', sa.Float(), nullable=False),
        sa.Column('unit_price', sa.Float(), nullable=False),
        sa.Column('cost_at_sale', sa.Float(), nullable=False),
        sa.Column('tax_rate', sa.Float(), nullable=False),
        sa.Column('discount', sa.Float(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_sale_items_sale_id'), ['sale_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_items_product_id'), ['product_id'], unique=False)

    op.create_table('payments',
        *_envelope(),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_payments_sale_id'), ['sale_id'], unique=False)

    # ==========================================================================
    # 4. STOCK LEDGER
    # ==========================================================================
    op.create_table('stock_ledger',
        *_envelope(),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity_delta', sa.Float(), nullable=False),
        sa.Column('reason', sa.String(length=64), nullable=False),
        sa.Column('sale_item_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        *_envelope_constraints(),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_ledger', schema=None) as batch_op:
        batch_op.create_index('ix_stock_ledger_tenant_product', ['tenant_id', 'product_id', 'is_deleted'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_ledger_sale_item_id'), ['sale_item_id'], unique=False)

    # Envelope indexes shared by every synced table
    for table in SYNCED_TABLES:
        with op.batch_alter_table(table, schema=None) as batch_op:
            batch_op.create_index(f'ix_{table}_tenant_id', ['tenant_id'], unique=False)
            batch_op.create_index(f'ix_{table}_is_synced', ['is_synced'], unique=False)
            batch_op.create_index(f'ix_{table}_is_deleted', ['is_deleted'], unique=False)


def downgrade():
    for table in reversed(SYNCED_TABLES):
        op.drop_table(table)
    op.drop_table('tenants')
