# shop-backend/inventory/exceptions.py


class StockError(Exception):
    """Base exception for stock operations"""
    pass


class InsufficientStockError(StockError):
    """Raised when a mutation or reservation would take stock below zero"""

    def __init__(self, stockable, requested_quantity, available_quantity):
        self.stockable = stockable
        self.requested_quantity = requested_quantity
        self.available_quantity = available_quantity
        name = getattr(stockable, "name", None) or "item"
        super().__init__(
            f"Insufficient stock for {name}: requested {requested_quantity}, "
            f"available {available_quantity}"
        )
