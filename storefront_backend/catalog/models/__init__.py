from .product import Product
from .stock_entry import StockEntry

__all__ = ["Product", "StockEntry"]
