"""Enumerations and policy constants shared across Stockbook modules.

Centralises domain constants so that the catalog, ledger, reconciler,
reporting functions, and the workbook layer rely on a single source of truth
for identifiers and thresholds.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Items with fewer units than this (but more than zero) are flagged as low stock.
LOW_STOCK_THRESHOLD = 10

# Number of rows reported by ranking and "recent activity" views.
TOP_PRODUCTS_LIMIT = 5
RECENT_TRANSACTIONS_LIMIT = 5

DEFAULT_CURRENCY_SYMBOL = "₹"


class TransactionType(str, Enum):
    """Enumerate the canonical transaction types recorded in the ledger."""

    PURCHASE = "purchase"
    SALE = "sale"


class StockStatus(str, Enum):
    """Enumerate the stock alert buckets an item can fall into."""

    OUT_OF_STOCK = "out_of_stock"
    LOW_STOCK = "low_stock"
    IN_STOCK = "in_stock"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the data layer."""

    ITEMS = "Items"
    TRANSACTIONS = "Transactions"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "LOW_STOCK_THRESHOLD",
    "TOP_PRODUCTS_LIMIT",
    "RECENT_TRANSACTIONS_LIMIT",
    "DEFAULT_CURRENCY_SYMBOL",
    "TransactionType",
    "StockStatus",
    "SheetName",
]
