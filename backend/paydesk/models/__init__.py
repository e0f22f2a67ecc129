from .catalog import Product, LoyaltyCustomer
from .ledger import SaleRecord, StockEffect

__all__ = [
    'Product', 'LoyaltyCustomer',
    'SaleRecord', 'StockEffect',
]
