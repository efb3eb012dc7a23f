from .auth import User, SessionToken
from .catalog import Product, Supplier, Customer
from .inventory import InventoryMovement
from .sales import Sale, SaleItem, SalePayment, SaleRefund, SaleRefundItem

__all__ = [
    'User', 'SessionToken',
    'Product', 'Supplier', 'Customer',
    'InventoryMovement',
    'Sale', 'SaleItem', 'SalePayment', 'SaleRefund', 'SaleRefundItem',
]
