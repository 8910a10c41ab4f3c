"""Command-line entry points for Stockbook.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into calls on the catalog and reconciler, and printing
report rows. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log, reports
from .constants import TOP_PRODUCTS_LIMIT, TransactionType
from .exceptions import BusinessRuleViolation, InvalidInputError


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    mutates: bool = False


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="stockbook-cli",
        description="Command-line tools for the Stockbook inventory workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as item edits, purchases and sales."""
    specs = {
        "add-item": register_add_item_command(subparsers),
        "update-item": register_update_item_command(subparsers),
        "delete-item": register_delete_item_command(subparsers),
        "purchase": register_transaction_command(subparsers, TransactionType.PURCHASE),
        "sale": register_transaction_command(subparsers, TransactionType.SALE),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "items": _simple_spec("items", "List catalog items with stock status and margins.", run_items_report),
        "log": _simple_spec("log", "Display the transaction log, newest first.", run_log_report),
        "dashboard": _simple_spec("dashboard", "Display headline figures and stock alerts.", run_dashboard_report),
        "report": _simple_spec("report", "Display revenue, cost, profit and inventory valuation.", run_profit_report),
        "categories": _simple_spec("categories", "Display the category breakdown.", run_category_report),
        "top-products": register_top_products_command(subparsers),
        "alerts": _simple_spec("alerts", "List out-of-stock and low-stock items.", run_alerts_report),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _simple_spec(
    name: str,
    help_text: str,
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
) -> CommandSpec:
    """Build a spec for a read command that takes no options."""

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute)


def register_add_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-item``."""
    name = "add-item"
    help_text = "Add a new item to the catalog."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--name", required=True)
        parser.add_argument("--category", required=True)
        parser.add_argument("--stock", default="0")
        parser.add_argument("--cost-price", default="0")
        parser.add_argument("--selling-price", default="0")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_item, mutates=True)


def register_update_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-item``."""
    name = "update-item"
    help_text = "Edit the name, category, prices, or stock of an item."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--item-id", required=True)
        parser.add_argument("--name", default=None)
        parser.add_argument("--category", default=None)
        parser.add_argument("--stock", default=None, help="Stock correction; bypasses the ledger.")
        parser.add_argument("--cost-price", default=None)
        parser.add_argument("--selling-price", default=None)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_item, mutates=True)


def register_delete_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-item``."""
    name = "delete-item"
    help_text = "Delete an item together with its transactions."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--item-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_item, mutates=True)


def register_transaction_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    transaction_type: TransactionType,
) -> CommandSpec:
    """Register the parser and executor for ``purchase`` or ``sale``."""
    name = transaction_type.value
    help_text = f"Record a {name} transaction."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--item-id", required=True)
        parser.add_argument("--quantity", required=True)
        parser.add_argument(
            "--price",
            default=None,
            help="Unit price (defaults to the item's selling price for sales, cost price for purchases).",
        )
        parser.set_defaults(command=name, transaction_type=transaction_type.value)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_transaction, mutates=True)


def register_top_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``top-products``."""
    name = "top-products"
    help_text = "Rank items by sales revenue."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--limit", type=int, default=TOP_PRODUCTS_LIMIT)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_top_products_report)


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    context = core_logic.load_runtime_context(config_path)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


def parse_int(raw: str, label: str) -> int:
    """Parse an integer argument, reporting failures as invalid input."""
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"{label} must be a whole number, got {raw!r}") from exc


def translate_add_item(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into an add-item request."""
    return {
        "name": args.name,
        "category": args.category,
        "stock": parse_int(args.stock, "Stock"),
        "cost_price": args.cost_price,
        "selling_price": args.selling_price,
    }


def translate_update_item(args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into the fields an update-item request changes."""
    fields: Dict[str, Any] = {}
    for field_name in ("name", "category", "cost_price", "selling_price"):
        value = getattr(args, field_name, None)
        if value is not None:
            fields[field_name] = value
    if getattr(args, "stock", None) is not None:
        fields["stock"] = parse_int(args.stock, "Stock")
    return fields


def translate_transaction(context: core_logic.RuntimeContext, args: argparse.Namespace) -> Mapping[str, Any]:
    """Translate CLI args into a record_transaction request.

    A missing ``--price`` falls back to the item's selling price for sales and
    its cost price for purchases.
    """
    transaction_type = TransactionType(args.transaction_type)
    price = args.price
    if price is None:
        item = context.catalog.get_item(args.item_id)
        price = item.selling_price if transaction_type is TransactionType.SALE else item.cost_price
    return {
        "item_id": args.item_id,
        "transaction_type": transaction_type,
        "quantity": parse_int(args.quantity, "Quantity"),
        "price_per_unit": price,
    }


def _money(context: core_logic.RuntimeContext, value) -> str:
    return reports.format_money(value, context.settings.currency_symbol)


def run_add_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-item workflow."""
    item = context.catalog.add_item(**translate_add_item(args))
    print(f"Added {item.name} as {item.item_id}")
    return 0


def run_update_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the update-item workflow."""
    item = context.catalog.update_item(args.item_id, **translate_update_item(args))
    print(f"Updated {item.item_id}: {item.name} [{item.category}] stock={item.stock}")
    return 0


def run_delete_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the delete-item workflow."""
    item = context.catalog.find_item(args.item_id)
    context.catalog.delete_item(args.item_id)
    if item is None:
        print(f"No item {args.item_id}; nothing deleted")
    else:
        print(f"Deleted {item.name} ({item.item_id})")
    return 0


def run_transaction(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute a purchase or sale through the stock reconciler."""
    request = translate_transaction(context, args)
    transaction = context.reconciler.record_transaction(**request)
    item = context.catalog.get_item(transaction.item_id)
    print(
        f"Recorded {transaction.transaction_type.value} {transaction.transaction_id}: "
        f"{transaction.quantity} x {transaction.item_name} = {_money(context, transaction.total_amount)} "
        f"(stock now {item.stock})"
    )
    return 0


def run_items_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print every item with stock status and per-item potential profit."""
    items = context.catalog.list_items()
    if not items:
        print("No items yet.")
        return 0
    for item in items:
        status = reports.classify_stock(item).value
        print(
            f"{item.item_id}  {item.name}  [{item.category}]  stock={item.stock} ({status})  "
            f"cost={_money(context, item.cost_price)}  price={_money(context, item.selling_price)}  "
            f"potential={_money(context, reports.item_potential_profit(item))}  "
            f"margin={reports.format_percent(reports.item_profit_margin(item))}"
        )
    totals = reports.calculate_inventory_totals(items)
    print(
        f"Total: {totals['item_count']} items, {totals['total_stock']} units, "
        f"{_money(context, totals['total_value'])} at cost"
    )
    return 0


def run_log_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the transaction log, newest first, with purchase/sale totals."""
    transactions = context.ledger.list_transactions()
    if not transactions:
        print("No transactions yet.")
        return 0
    for transaction in transactions:
        print(
            f"{transaction.timestamp:%Y-%m-%d %H:%M}  {transaction.transaction_type.value:<8}  "
            f"{transaction.item_name}  {transaction.quantity} x {_money(context, transaction.price_per_unit)}  "
            f"= {_money(context, transaction.total_amount)}"
        )
    summary = reports.summarize_transactions(transactions)
    print(
        f"Purchases: {summary['purchase_count']} ({_money(context, summary['purchase_amount'])})  "
        f"Sales: {summary['sale_count']} ({_money(context, summary['sales_amount'])})  "
        f"Net flow: {_money(context, summary['net_flow'])}"
    )
    return 0


def run_dashboard_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the dashboard headline figures."""
    snapshot = reports.build_dashboard(context.catalog.list_items(), context.ledger.list_transactions())
    print(context.settings.shop_name)
    print(f"Products: {snapshot.product_count}")
    print(f"Revenue: {_money(context, snapshot.total_revenue)}")
    print(f"Profit: {_money(context, snapshot.gross_profit)}")
    print(f"Inventory value: {_money(context, snapshot.total_inventory_value)}")
    for item in snapshot.out_of_stock:
        print(f"OUT OF STOCK: {item.name}")
    for item in snapshot.low_stock:
        print(f"LOW STOCK: {item.name} ({item.stock} left)")
    for transaction in snapshot.recent_transactions:
        print(f"Recent: {transaction.transaction_type.value} {transaction.item_name} {_money(context, transaction.total_amount)}")
    return 0


def run_profit_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print revenue, cost, profit, and inventory valuation."""
    items = context.catalog.list_items()
    transactions = context.ledger.list_transactions()
    summary = reports.calculate_profit_summary(items, transactions)
    valuation = reports.calculate_inventory_valuation(items)
    print(f"Total revenue: {_money(context, summary['total_revenue'])}")
    print(f"Cost of goods sold: {_money(context, summary['total_cost'])}")
    print(
        f"Gross profit: {_money(context, summary['gross_profit'])} "
        f"({reports.format_percent(summary['profit_margin'])} margin)"
    )
    print(f"Inventory value: {_money(context, valuation['total_inventory_value'])}")
    print(f"Potential revenue: {_money(context, valuation['potential_revenue'])}")
    print(f"Potential profit: {_money(context, valuation['potential_profit'])}")
    print(f"Purchase spend: {_money(context, reports.calculate_purchase_spend(transactions))}")
    return 0


def run_category_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the per-category rollup."""
    rollups = reports.rollup_by_category(context.catalog.list_items())
    if not rollups:
        print("No categories yet.")
        return 0
    for rollup in rollups.values():
        print(
            f"{rollup.category}: {rollup.item_count} items, {rollup.total_stock} units, "
            f"value {_money(context, rollup.total_value)}, "
            f"potential revenue {_money(context, rollup.potential_revenue)}, "
            f"potential profit {_money(context, rollup.potential_profit)}"
        )
    return 0


def run_top_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print the best-selling items by revenue."""
    ranking = reports.top_products(
        context.ledger.list_transactions(),
        limit=getattr(args, "limit", TOP_PRODUCTS_LIMIT),
    )
    if not ranking:
        print("No sales data yet.")
        return 0
    for position, row in enumerate(ranking, start=1):
        print(f"{position}. {row.item_name}: {row.quantity} sold, {_money(context, row.revenue)}")
    return 0


def run_alerts_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print out-of-stock items followed by low-stock items."""
    alerts = reports.stock_alerts(context.catalog.list_items())
    if not alerts:
        print("All items are well stocked.")
        return 0
    for item in alerts:
        print(f"{reports.classify_stock(item).value}: {item.name} ({item.stock})")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].mutates:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
