from .tenancy import Parish, Warehouse
from .inventory import Product, StockMovement, StockLock
from .documents import Invoice, InventorySession, InventoryItem

__all__ = [
    'Parish', 'Warehouse',
    'Product', 'StockMovement', 'StockLock',
    'Invoice', 'InventorySession', 'InventoryItem',
]
