"""Business logic layer for Stockbook.

This module hosts the stock reconciler, the only component allowed to create
a transaction and move stock together, and the runtime context that owns the
catalog and ledger for one open workbook. The data access layer is consumed
for all I/O; aggregation lives in :mod:`stockbook.reports`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union

from openpyxl.workbook import Workbook

from . import data_manager, log
from .catalog import CatalogStore
from .constants import EXPECTED_SCHEMA_VERSION, TransactionType
from .exceptions import InsufficientStockError, InvalidInputError
from .ledger import Ledger
from .models import (
    Transaction,
    coerce_transaction_type,
    generate_id,
    require_nonnegative_money,
    require_positive_quantity,
    require_timestamp,
)


Money = Union[Decimal, int, str]


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` as an aware datetime, or the current UTC time."""

    if candidate is None:
        return datetime.now(UTC)
    return require_timestamp(candidate)


class StockReconciler:
    """Pairs every recorded transaction with its effect on stock.

    A call to :meth:`record_transaction` either appends the transaction and
    writes the new stock level, or changes nothing and raises.
    """

    def __init__(self, catalog: CatalogStore, ledger: Ledger) -> None:
        self.catalog = catalog
        self.ledger = ledger

    def record_transaction(
        self,
        item_id: str,
        transaction_type: Union[TransactionType, str],
        quantity: int,
        price_per_unit: Money,
        *,
        timestamp: Optional[datetime] = None,
    ) -> Transaction:
        """Validate, append, and apply a purchase or sale.

        Args:
            item_id (str): Identifier of the catalog item being moved.
            transaction_type (TransactionType | str): ``purchase`` adds
                stock, ``sale`` removes it.
            quantity (int): Units moved; must be a positive integer.
            price_per_unit (Decimal | int | str): Unit price; must be zero
                or positive.
            timestamp (datetime | None): Creation instant. Defaults to the
                current UTC time; naive values are taken as UTC.

        Returns:
            Transaction: The appended record.

        Raises:
            MissingReferenceError: If ``item_id`` is not in the catalog.
            InvalidInputError: If the type, quantity, price, or timestamp is
                invalid.
            InsufficientStockError: If a sale asks for more units than the
                item currently holds. Partial fulfilment is never attempted.
        """

        item = self.catalog.get_item(item_id)
        kind = coerce_transaction_type(transaction_type)
        quantity = require_positive_quantity(quantity)
        price = require_nonnegative_money(price_per_unit)
        moment = _resolve_timestamp(timestamp)

        if kind is TransactionType.SALE:
            if quantity > item.stock:
                log.warning(
                    "Rejected sale of %d units of '%s': only %d in stock",
                    quantity,
                    item_id,
                    item.stock,
                )
                raise InsufficientStockError(item_id, quantity, item.stock)
            new_stock = item.stock - quantity
        elif kind is TransactionType.PURCHASE:
            new_stock = item.stock + quantity
        else:  # pragma: no cover - TransactionType is closed
            raise ValueError(f"Unsupported transaction type: {kind!r}")

        transaction = Transaction(
            transaction_id=generate_id("T"),
            item_id=item.item_id,
            item_name=item.name,
            transaction_type=kind,
            quantity=quantity,
            price_per_unit=price,
            total_amount=quantity * price,
            timestamp=moment,
        )

        self.ledger.append(transaction)
        try:
            self.catalog.update_item(item_id, stock=new_stock)
        except Exception:
            self.ledger.discard(transaction.transaction_id)
            log.error("Rolled back transaction '%s' after stock update failed", transaction.transaction_id)
            raise

        log.info(
            "Recorded %s transaction '%s' for item '%s' (quantity=%s, total=%s, stock %s -> %s)",
            kind.value.upper(),
            transaction.transaction_id,
            item_id,
            quantity,
            transaction.total_amount,
            item.stock,
            new_stock,
        )
        return transaction

    def record_purchase(self, item_id: str, quantity: int, price_per_unit: Money, **kwargs) -> Transaction:
        """Shortcut for :meth:`record_transaction` with ``purchase``."""

        return self.record_transaction(item_id, TransactionType.PURCHASE, quantity, price_per_unit, **kwargs)

    def record_sale(self, item_id: str, quantity: int, price_per_unit: Money, **kwargs) -> Transaction:
        """Shortcut for :meth:`record_transaction` with ``sale``."""

        return self.record_transaction(item_id, TransactionType.SALE, quantity, price_per_unit, **kwargs)


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, workbook, and the in-memory stores."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    catalog: CatalogStore
    ledger: Ledger
    reconciler: StockReconciler


def build_runtime_context(settings: data_manager.ConfigSettings, workbook: Workbook) -> RuntimeContext:
    """Hydrate the catalog and ledger from ``workbook`` and wire them together.

    Raises:
        InvalidInputError: If a stored item fails validation or a stored
            transaction references an item missing from the catalog.
    """

    ledger = Ledger.from_records(data_manager.iter_transactions(workbook))
    catalog = CatalogStore.from_records(data_manager.iter_items(workbook), ledger=ledger)
    orphans = sorted({entry.item_id for entry in ledger if entry.item_id not in catalog})
    if orphans:
        log.error("Workbook holds transactions for unknown items: %s", ", ".join(orphans))
        raise InvalidInputError(f"Transactions reference unknown items: {', '.join(orphans)}")
    return RuntimeContext(
        settings=settings,
        workbook=workbook,
        catalog=catalog,
        ledger=ledger,
        reconciler=StockReconciler(catalog, ledger),
    )


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer performs its upward search from
            the current working directory.

    Returns:
        RuntimeContext: Context with the catalog and ledger loaded.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    context = build_runtime_context(settings, workbook)
    log.info(
        "Loaded runtime context for workbook '%s' (%d items, %d transactions)",
        settings.data_file,
        len(context.catalog),
        len(context.ledger),
    )
    return context


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """

    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Write the catalog and ledger into the workbook and save it to disk."""

    data_manager.replace_items(context.workbook, context.catalog.list_items())
    data_manager.replace_transactions(context.workbook, context.ledger)
    data_manager.save_workbook(context.workbook, destination=context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook from disk, discarding unsaved modifications.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """

    workbook = data_manager.open_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return build_runtime_context(context.settings, workbook)
