# shop-backend/inventory/validation.py
"""
Read-only checkout validation results.
Shortages are reported per item instead of raised, so checkout can offer
partial fulfillment, substitution, or rejection.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .stockables import stockable_ref


def display_name(stockable) -> str:
    return getattr(stockable, "display_name", None) or getattr(stockable, "name", None) or "Item"


@dataclass
class StockValidationItem:
    stockable: Any
    requested_quantity: int
    available_quantity: int
    is_available: bool
    message: Optional[str] = None

    @property
    def shortage(self) -> int:
        return max(0, self.requested_quantity - self.available_quantity)

    @property
    def fulfillable_quantity(self) -> int:
        return min(self.requested_quantity, self.available_quantity)

    def can_partially_fulfill(self) -> bool:
        return not self.is_available and self.available_quantity > 0

    def to_dict(self) -> Dict[str, Any]:
        ref = stockable_ref(self.stockable)
        return {
            "stockable_type": ref.type,
            "stockable_id": ref.id,
            "name": display_name(self.stockable),
            "requested_quantity": self.requested_quantity,
            "available_quantity": self.available_quantity,
            "is_available": self.is_available,
            "shortage": self.shortage,
            "fulfillable_quantity": self.fulfillable_quantity,
            "can_partially_fulfill": self.can_partially_fulfill(),
            "message": self.message,
        }


@dataclass
class StockValidationResult:
    valid: bool
    items: List[StockValidationItem] = field(default_factory=list)

    @classmethod
    def success(cls, items) -> "StockValidationResult":
        return cls(valid=True, items=list(items))

    @classmethod
    def failure(cls, items) -> "StockValidationResult":
        return cls(valid=False, items=list(items))

    def is_valid(self) -> bool:
        return self.valid

    @property
    def unavailable_items(self) -> List[StockValidationItem]:
        return [item for item in self.items if not item.is_available]

    @property
    def available_items(self) -> List[StockValidationItem]:
        return [item for item in self.items if item.is_available]

    @property
    def partially_fulfillable_items(self) -> List[StockValidationItem]:
        return [item for item in self.items if item.can_partially_fulfill()]

    @property
    def unavailable_count(self) -> int:
        return len(self.unavailable_items)

    def has_partially_fulfillable_items(self) -> bool:
        return bool(self.partially_fulfillable_items)

    @property
    def error_messages(self) -> List[str]:
        return [item.message for item in self.unavailable_items if item.message]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "items": [item.to_dict() for item in self.items],
            "unavailable_count": self.unavailable_count,
            "error_messages": self.error_messages,
        }
