from .inventory import StockItem, StockMovement
from .sales import Discount, SaleLine, SaleRecord, SaleReturnLine, SaleReturnRecord
from .purchasing import (
    PurchaseLine,
    PurchaseRecord,
    PurchaseReturnLine,
    PurchaseReturnRecord,
    Supplier,
    SupplierPayment,
)
from .storage import StoredCollection

__all__ = [
    'StockItem', 'StockMovement',
    'Discount', 'SaleLine', 'SaleRecord', 'SaleReturnLine', 'SaleReturnRecord',
    'PurchaseLine', 'PurchaseRecord', 'PurchaseReturnLine', 'PurchaseReturnRecord',
    'Supplier', 'SupplierPayment',
    'StoredCollection',
]
