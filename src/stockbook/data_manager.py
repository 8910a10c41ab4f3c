"""Data access layer for Stockbook.

This module provides low-level helpers that read from and write to the
Stockbook workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening and persisting the Excel file.
3. Sheet operations: converting :class:`~stockbook.models.Item` and
   :class:`~stockbook.models.Transaction` records to worksheet rows and back.

Money columns are written as decimal text and timestamps as ISO-8601 text so
that a record survives a save/load round trip field for field.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import DEFAULT_CURRENCY_SYMBOL, SheetName, TransactionType
from .models import Item, Transaction, require_timestamp


CONFIG_FILE_NAME = "config.ini"
ITEMS_SHEET = SheetName.ITEMS.value
TRANSACTIONS_SHEET = SheetName.TRANSACTIONS.value

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    ITEMS_SHEET: [
        "ItemID",
        "Name",
        "Category",
        "Stock",
        "CostPrice",
        "SellingPrice",
    ],
    TRANSACTIONS_SHEET: [
        "TransactionID",
        "ItemID",
        "ItemName",
        "Type",
        "Quantity",
        "PricePerUnit",
        "TotalAmount",
        "Timestamp",
    ],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    shop_name: str
    schema_version: str
    currency_symbol: str = DEFAULT_CURRENCY_SYMBOL


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification, which allows the caller to deliberately target a
    non-standard location. When no explicit path is given the function walks up
    from the current working directory toward the filesystem root looking for a
    file named ``CONFIG_FILE_NAME``. The first match that exists on disk is
    considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search. May be relative to the current working directory.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Relative ``DataFile`` entries are expanded against ``base_path`` when
    provided, or against the current working directory as a fallback. The
    ``[Display]`` section is optional.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to use as the anchor for relative
            ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings with a resolved data file path.

    Raises:
        KeyError: If one of the required ``[System]`` options is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        shop_name = parser.get("System", "ShopName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    currency_symbol = parser.get("Display", "CurrencySymbol", fallback=DEFAULT_CURRENCY_SYMBOL)

    data_file_path = Path(data_file_raw).expanduser()
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        shop_name=shop_name,
        schema_version=schema_version,
        currency_symbol=currency_symbol,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the Stockbook workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def iter_items(workbook: Workbook) -> Iterable[Item]:
    """Iterate over item records stored on the ``Items`` worksheet.

    The iterator skips the header row and any fully empty rows.

    Yields:
        Item: One structured record for each meaningful row in the sheet.
    """

    sheet = workbook[ITEMS_SHEET]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield deserialize_item(raw)


def iter_transactions(workbook: Workbook) -> Iterable[Transaction]:
    """Stream transaction records from the ``Transactions`` worksheet.

    Rows are stored oldest-first, matching the ledger's insertion order.

    Yields:
        Transaction: Normalized transaction record for each populated row.
    """

    sheet = workbook[TRANSACTIONS_SHEET]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        if any(cell is not None for cell in raw):
            yield deserialize_transaction(raw)


def replace_items(workbook: Workbook, items: Iterable[Item]) -> None:
    """Overwrite the ``Items`` worksheet body with ``items``."""

    _replace_rows(workbook, ITEMS_SHEET, (serialize_item(item) for item in items))


def replace_transactions(workbook: Workbook, transactions: Iterable[Transaction]) -> None:
    """Overwrite the ``Transactions`` worksheet body, oldest entry first."""

    _replace_rows(workbook, TRANSACTIONS_SHEET, (serialize_transaction(entry) for entry in transactions))


def _replace_rows(workbook: Workbook, sheet_name: str, rows: Iterable[list[object]]) -> None:
    sheet = workbook[sheet_name]
    if sheet.max_row > 1:
        sheet.delete_rows(2, sheet.max_row - 1)
    count = 0
    for row in rows:
        sheet.append(row)
        count += 1
    log.debug("Wrote %d rows to sheet '%s'", count, sheet_name)


def serialize_item(record: Item) -> list[object]:
    """Convert an item into the ``Items`` worksheet column ordering."""

    return [
        record.item_id,
        record.name,
        record.category,
        record.stock,
        str(record.cost_price),
        str(record.selling_price),
    ]


def serialize_transaction(record: Transaction) -> list[object]:
    """Convert a transaction into the ``Transactions`` worksheet column ordering."""

    return [
        record.transaction_id,
        record.item_id,
        record.item_name,
        record.transaction_type.value,
        record.quantity,
        str(record.price_per_unit),
        str(record.total_amount),
        record.timestamp.isoformat(),
    ]


def _to_decimal(raw: object) -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal("0")


def _to_datetime(raw: object) -> datetime:
    # Excel date cells come back naive; ISO text may be naive when hand-edited.
    if isinstance(raw, datetime):
        return require_timestamp(raw)
    return require_timestamp(datetime.fromisoformat(str(raw)))


def deserialize_item(raw_row: Sequence[object]) -> Item:
    """Convert a raw worksheet row into an :class:`Item`.

    Identifier, name, and category are coerced to ``str`` to avoid surprises
    caused by Excel interpreting numeric-looking text as numbers.
    """

    item_id, name, category, stock, cost_raw, selling_raw = raw_row[:6]
    return Item(
        item_id=str(item_id),
        name=str(name) if name is not None else "",
        category=str(category) if category is not None else "",
        stock=int(stock) if stock is not None else 0,
        cost_price=_to_decimal(cost_raw),
        selling_price=_to_decimal(selling_raw),
    )


def deserialize_transaction(raw_row: Sequence[object]) -> Transaction:
    """Convert a raw worksheet row into a :class:`Transaction`.

    The timestamp is reconstructed as a timezone-aware
    :class:`~datetime.datetime` rather than left as text; naive values are
    read as UTC.

    Raises:
        ValueError: If the type column holds an unknown transaction type or
            the timestamp cannot be parsed.
    """

    (
        transaction_id,
        item_id,
        item_name,
        transaction_type,
        quantity,
        price_raw,
        total_raw,
        timestamp_raw,
    ) = raw_row[:8]

    return Transaction(
        transaction_id=str(transaction_id),
        item_id=str(item_id),
        item_name=str(item_name) if item_name is not None else "",
        transaction_type=TransactionType(str(transaction_type)),
        quantity=int(quantity),
        price_per_unit=_to_decimal(price_raw),
        total_amount=_to_decimal(total_raw),
        timestamp=_to_datetime(timestamp_raw),
    )
