"""Fixed-shape records for catalog items and ledger transactions.

Both records are frozen dataclasses: the catalog replaces an item with a
merged copy on every edit, and transactions are never edited at all. The
validators in this module are the boundary checks shared by the catalog and
the stock reconciler.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from . import log
from .constants import TransactionType
from .exceptions import InvalidInputError


@dataclass(frozen=True)
class Item:
    """A catalog entry representing one stocked product."""

    item_id: str
    name: str
    category: str
    stock: int
    cost_price: Decimal
    selling_price: Decimal


@dataclass(frozen=True)
class Transaction:
    """An immutable purchase or sale record affecting one item's stock.

    ``item_name`` is a snapshot taken when the transaction was recorded and
    does not follow later renames. ``total_amount`` is computed once from
    ``quantity * price_per_unit`` and never recomputed.
    """

    transaction_id: str
    item_id: str
    item_name: str
    transaction_type: TransactionType
    quantity: int
    price_per_unit: Decimal
    total_amount: Decimal
    timestamp: datetime


def require_timestamp(moment: Any) -> datetime:
    """Return ``moment`` as a timezone-aware datetime.

    Naive values are taken to be UTC, which is how every timestamp is
    recorded.

    Raises:
        InvalidInputError: If ``moment`` is not a :class:`~datetime.datetime`.
    """

    if not isinstance(moment, datetime):
        log.error("Timestamp validation failed: %r", moment)
        raise InvalidInputError(f"Timestamp must be a datetime, got {moment!r}")
    if moment.tzinfo is None or moment.utcoffset() is None:
        return moment.replace(tzinfo=UTC)
    return moment


def generate_id(prefix: str) -> str:
    """Return a fresh identifier such as ``I-3f2a...`` or ``T-9c41...``."""

    return f"{prefix}-{uuid.uuid4().hex}"


def require_name(name: Any) -> str:
    """Validate that an item name is a non-empty string."""

    if not isinstance(name, str) or not name.strip():
        log.error("Item name validation failed: %r", name)
        raise InvalidInputError("Item name must be a non-empty string")
    return name


def require_category(category: Any) -> str:
    if not isinstance(category, str):
        log.error("Item category validation failed: %r", category)
        raise InvalidInputError("Item category must be a string")
    return category


def require_stock(stock: Any) -> int:
    """Validate that a stock level is a non-negative integer.

    ``bool`` is rejected even though it subclasses ``int``.
    """

    if isinstance(stock, bool) or not isinstance(stock, int) or stock < 0:
        log.error("Stock validation failed: %r", stock)
        raise InvalidInputError("Stock must be an integer greater than or equal to zero")
    return stock


def require_positive_quantity(quantity: Any) -> int:
    """Validate that a transaction quantity is a strictly positive integer.

    Args:
        quantity (int): Number of units moved by a purchase or sale.

    Returns:
        int: ``quantity`` unchanged.

    Raises:
        InvalidInputError: If ``quantity`` is not an integer, is a ``bool``,
            or is zero or negative.
    """

    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        log.error("Quantity validation failed: %r", quantity)
        raise InvalidInputError("Quantity must be an integer greater than zero")
    return quantity


def require_nonnegative_money(amount: Any) -> Decimal:
    """Coerce a monetary value into a non-negative :class:`~decimal.Decimal`.

    Integers, decimals, and numeric strings are accepted. Floats are routed
    through ``str`` so that ``0.1`` becomes ``Decimal("0.1")`` rather than
    its binary expansion.

    Args:
        amount (Decimal | int | str | float): Price supplied by the caller.

    Returns:
        Decimal: The validated amount.

    Raises:
        InvalidInputError: If ``amount`` cannot be parsed, is not finite, or
            is negative.
    """

    if isinstance(amount, bool):
        log.error("Monetary value validation failed: %r", amount)
        raise InvalidInputError("Amount must be a number")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except (InvalidOperation, ValueError) as exc:
        log.error("Monetary value validation failed: %r", amount)
        raise InvalidInputError(f"Amount is not a valid number: {amount!r}") from exc
    if not value.is_finite() or value < Decimal("0"):
        log.error("Monetary value validation failed: %s", value)
        raise InvalidInputError("Amount must be zero or positive")
    return value


def coerce_transaction_type(value: Any) -> TransactionType:
    """Resolve ``value`` into a :class:`TransactionType` member."""

    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(str(value).strip().lower())
    except ValueError as exc:
        log.error("Unsupported transaction type: %r", value)
        raise InvalidInputError(f"Unsupported transaction type: {value!r}") from exc


__all__ = [
    "Item",
    "Transaction",
    "generate_id",
    "require_name",
    "require_category",
    "require_stock",
    "require_positive_quantity",
    "require_nonnegative_money",
    "coerce_transaction_type",
    "require_timestamp",
]
