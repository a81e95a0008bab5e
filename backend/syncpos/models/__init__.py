from .base import SyncMixin, new_uuid
from .tenancy import Tenant, Setting, TENANT_STATUS_ACTIVE
from .auth import User
from .catalog import Category, Unit, Supplier, Customer, Product, ProductSupplier
from .sales import TradeDocument, Sale, Purchase, SaleItem, Payment
from .inventory import StockLedger

__all__ = [
    'SyncMixin', 'new_uuid',
    'Tenant', 'Setting', 'TENANT_STATUS_ACTIVE',
    'User',
    'Category', 'Unit', 'Supplier', 'Customer', 'Product', 'ProductSupplier',
    'TradeDocument', 'Sale', 'Purchase', 'SaleItem', 'Payment',
    'StockLedger',
]
