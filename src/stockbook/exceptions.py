"""Typed exceptions raised by the catalog, ledger, and reconciler.

Every failure is recoverable by the caller: the operation that raised leaves
the catalog and the ledger exactly as they were before the call.

    BusinessRuleViolation
    +-- MissingReferenceError   unknown item id
    +-- InvalidInputError       malformed or out-of-range field (also ValueError)
    +-- InsufficientStockError  sale larger than the available stock
"""

from __future__ import annotations

from typing import Optional


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""

    code = "BUSINESS_RULE_VIOLATION"


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced item is unknown."""

    code = "NOT_FOUND"

    def __init__(self, item_id: str, message: Optional[str] = None):
        self.item_id = item_id
        super().__init__(message or f"Unknown item id: {item_id}")


class InvalidInputError(BusinessRuleViolation, ValueError):
    """Raised when a quantity, price, or field value fails validation."""

    code = "INVALID_INPUT"


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a sale asks for more units than the item has in stock."""

    code = "INSUFFICIENT_STOCK"

    def __init__(self, item_id: str, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for item '{item_id}': "
            f"requested {requested}, available {available}"
        )


__all__ = [
    "BusinessRuleViolation",
    "MissingReferenceError",
    "InvalidInputError",
    "InsufficientStockError",
]
