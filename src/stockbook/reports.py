"""Aggregation functions behind the dashboard and report views.

Every function here is pure: it receives snapshots produced by
:meth:`CatalogStore.list_items` and :meth:`Ledger.list_transactions` and
returns freshly built values. Empty inputs produce zeroed metrics.

Two margin formulas coexist on purpose. The overall profit margin divides
gross profit by revenue, while the per-item margin divides the unit markup by
the item's cost price.

Cost of goods sold is priced at each item's *current* cost price, whereas
revenue comes from the historical ``total_amount`` of each sale. A sale whose
item no longer exists contributes revenue but no cost.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Sequence

from . import log
from .constants import (
    LOW_STOCK_THRESHOLD,
    RECENT_TRANSACTIONS_LIMIT,
    TOP_PRODUCTS_LIMIT,
    StockStatus,
    TransactionType,
)
from .models import Item, Transaction


ZERO = Decimal("0")
HUNDRED = Decimal("100")
MONEY_QUANTUM = Decimal("0.01")
PERCENT_QUANTUM = Decimal("0.1")


@dataclass(frozen=True)
class CategoryRollup:
    """Summed catalog figures for one category label."""

    category: str
    item_count: int = 0
    total_stock: int = 0
    total_value: Decimal = ZERO
    potential_revenue: Decimal = ZERO

    @property
    def potential_profit(self) -> Decimal:
        return self.potential_revenue - self.total_value


@dataclass(frozen=True)
class ProductSales:
    """Units and revenue sold for one item, labeled by its snapshotted name."""

    item_id: str
    item_name: str
    quantity: int
    revenue: Decimal


@dataclass(frozen=True)
class DashboardSnapshot:
    """Headline figures shown on the dashboard."""

    product_count: int
    total_revenue: Decimal
    gross_profit: Decimal
    total_inventory_value: Decimal
    out_of_stock: List[Item] = field(default_factory=list)
    low_stock: List[Item] = field(default_factory=list)
    recent_transactions: List[Transaction] = field(default_factory=list)


def _unsupported(transaction: Transaction) -> ValueError:
    return ValueError(f"Unsupported transaction type: {transaction.transaction_type!r}")


def calculate_profit_summary(items: Iterable[Item], transactions: Iterable[Transaction]) -> Dict[str, Decimal]:
    """Produce revenue, cost of goods, gross profit, and margin figures.

    Args:
        items (Iterable[Item]): Catalog snapshot used to price cost of goods.
        transactions (Iterable[Transaction]): Ledger snapshot.

    Returns:
        dict[str, Decimal]: ``total_revenue``, ``total_cost``,
            ``gross_profit``, and ``profit_margin`` (a percentage of revenue,
            zero when there is no revenue).
    """

    cost_by_id = {item.item_id: item.cost_price for item in items}
    total_revenue = ZERO
    total_cost = ZERO
    for transaction in transactions:
        if transaction.transaction_type is TransactionType.SALE:
            total_revenue += transaction.total_amount
            cost_price = cost_by_id.get(transaction.item_id)
            if cost_price is not None:
                total_cost += transaction.quantity * cost_price
        elif transaction.transaction_type is TransactionType.PURCHASE:
            continue
        else:
            raise _unsupported(transaction)

    gross_profit = total_revenue - total_cost
    profit_margin = gross_profit / total_revenue * HUNDRED if total_revenue > ZERO else ZERO
    log.debug(
        "Calculated profit summary: revenue=%s cost=%s profit=%s margin=%s",
        total_revenue,
        total_cost,
        gross_profit,
        profit_margin,
    )
    return {
        "total_revenue": total_revenue,
        "total_cost": total_cost,
        "gross_profit": gross_profit,
        "profit_margin": profit_margin,
    }


def calculate_inventory_valuation(items: Iterable[Item]) -> Dict[str, Decimal]:
    """Value the stock on hand at cost and at selling price."""

    total_inventory_value = ZERO
    potential_revenue = ZERO
    for item in items:
        total_inventory_value += item.stock * item.cost_price
        potential_revenue += item.stock * item.selling_price
    return {
        "total_inventory_value": total_inventory_value,
        "potential_revenue": potential_revenue,
        "potential_profit": potential_revenue - total_inventory_value,
    }


def calculate_inventory_totals(items: Iterable[Item]) -> Dict[str, object]:
    """Count items and units on hand alongside their value at cost."""

    item_count = 0
    total_stock = 0
    total_value = ZERO
    for item in items:
        item_count += 1
        total_stock += item.stock
        total_value += item.stock * item.cost_price
    return {"item_count": item_count, "total_stock": total_stock, "total_value": total_value}


def calculate_purchase_spend(transactions: Iterable[Transaction]) -> Decimal:
    """Sum the amounts paid across purchase transactions."""

    return summarize_transactions(transactions)["purchase_amount"]


def summarize_transactions(transactions: Iterable[Transaction]) -> Dict[str, object]:
    """Count and total purchases and sales.

    ``net_flow`` is sales minus purchases, i.e. the cash that moved through
    the ledger.
    """

    purchase_count = 0
    sale_count = 0
    purchase_amount = ZERO
    sales_amount = ZERO
    for transaction in transactions:
        if transaction.transaction_type is TransactionType.PURCHASE:
            purchase_count += 1
            purchase_amount += transaction.total_amount
        elif transaction.transaction_type is TransactionType.SALE:
            sale_count += 1
            sales_amount += transaction.total_amount
        else:
            raise _unsupported(transaction)
    return {
        "purchase_count": purchase_count,
        "sale_count": sale_count,
        "transaction_count": purchase_count + sale_count,
        "purchase_amount": purchase_amount,
        "sales_amount": sales_amount,
        "net_flow": sales_amount - purchase_amount,
    }


def classify_stock(item: Item) -> StockStatus:
    """Place an item into its stock alert bucket."""

    if item.stock == 0:
        return StockStatus.OUT_OF_STOCK
    if item.stock < LOW_STOCK_THRESHOLD:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


def stock_alerts(items: Iterable[Item]) -> List[Item]:
    """List items needing attention: out-of-stock first, then low stock."""

    out_of_stock: List[Item] = []
    low_stock: List[Item] = []
    for item in items:
        status = classify_stock(item)
        if status is StockStatus.OUT_OF_STOCK:
            out_of_stock.append(item)
        elif status is StockStatus.LOW_STOCK:
            low_stock.append(item)
    return out_of_stock + low_stock


def rollup_by_category(items: Iterable[Item]) -> Dict[str, CategoryRollup]:
    """Group items by exact category label and sum their figures.

    Categories appear in the order their first item was encountered.
    """

    rollups: Dict[str, CategoryRollup] = {}
    for item in items:
        current = rollups.get(item.category) or CategoryRollup(category=item.category)
        rollups[item.category] = CategoryRollup(
            category=item.category,
            item_count=current.item_count + 1,
            total_stock=current.total_stock + item.stock,
            total_value=current.total_value + item.stock * item.cost_price,
            potential_revenue=current.potential_revenue + item.stock * item.selling_price,
        )
    log.debug("Rolled up %d categories", len(rollups))
    return rollups


def top_products(transactions: Iterable[Transaction], limit: int = TOP_PRODUCTS_LIMIT) -> List[ProductSales]:
    """Rank sold items by revenue.

    Sales are grouped by ``item_id`` and labeled with the name captured on
    the first sale encountered, so items deleted since still rank. Ties keep
    the order in which each item was first encountered in ``transactions``.

    Args:
        transactions (Iterable[Transaction]): Ledger snapshot, usually
            newest-first as returned by :meth:`Ledger.list_transactions`.
        limit (int): Maximum number of rows to return.

    Returns:
        list[ProductSales]: At most ``limit`` rows, highest revenue first.
    """

    totals: Dict[str, ProductSales] = {}
    for transaction in transactions:
        if transaction.transaction_type is TransactionType.PURCHASE:
            continue
        if transaction.transaction_type is not TransactionType.SALE:
            raise _unsupported(transaction)
        current = totals.get(transaction.item_id)
        if current is None:
            current = ProductSales(transaction.item_id, transaction.item_name, 0, ZERO)
        totals[transaction.item_id] = ProductSales(
            item_id=current.item_id,
            item_name=current.item_name,
            quantity=current.quantity + transaction.quantity,
            revenue=current.revenue + transaction.total_amount,
        )
    # sorted() is stable, so equal revenues keep first-encounter order.
    ranked = sorted(totals.values(), key=lambda row: row.revenue, reverse=True)
    return ranked[: max(limit, 0)]


def recent_transactions(transactions: Sequence[Transaction], limit: int = RECENT_TRANSACTIONS_LIMIT) -> List[Transaction]:
    """Return the ``limit`` newest transactions, newest first."""

    ordered = sorted(transactions, key=lambda transaction: transaction.timestamp, reverse=True)
    return ordered[: max(limit, 0)]


def item_potential_profit(item: Item) -> Decimal:
    """Profit realised if the whole stock sold at the current prices."""

    return item.stock * (item.selling_price - item.cost_price)


def item_profit_margin(item: Item) -> Decimal:
    """Unit markup as a percentage of cost price; zero for free items."""

    if item.cost_price > ZERO:
        return (item.selling_price - item.cost_price) / item.cost_price * HUNDRED
    return ZERO


def build_dashboard(items: Sequence[Item], transactions: Sequence[Transaction]) -> DashboardSnapshot:
    """Assemble the dashboard headline figures from one pair of snapshots."""

    summary = calculate_profit_summary(items, transactions)
    valuation = calculate_inventory_valuation(items)
    alerts = stock_alerts(items)
    return DashboardSnapshot(
        product_count=len(items),
        total_revenue=summary["total_revenue"],
        gross_profit=summary["gross_profit"],
        total_inventory_value=valuation["total_inventory_value"],
        out_of_stock=[item for item in alerts if item.stock == 0],
        low_stock=[item for item in alerts if item.stock > 0],
        recent_transactions=recent_transactions(transactions),
    )


def format_money(value: Decimal, symbol: str = "") -> str:
    """Render a monetary value with two decimals for display."""

    quantized = Decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
    sign = "-" if quantized < ZERO else ""
    return f"{sign}{symbol}{abs(quantized):,.2f}"


def format_percent(value: Decimal) -> str:
    """Render a percentage with one decimal for display."""

    return f"{Decimal(value).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)}%"


__all__ = [
    "CategoryRollup",
    "ProductSales",
    "DashboardSnapshot",
    "calculate_profit_summary",
    "calculate_inventory_valuation",
    "calculate_inventory_totals",
    "calculate_purchase_spend",
    "summarize_transactions",
    "classify_stock",
    "stock_alerts",
    "rollup_by_category",
    "top_products",
    "recent_transactions",
    "item_potential_profit",
    "item_profit_margin",
    "build_dashboard",
    "format_money",
    "format_percent",
]
