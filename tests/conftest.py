"""Shared pytest fixtures and utilities for Stockbook tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from stockbook import cli, constants, core_logic  # noqa: E402
from stockbook.catalog import CatalogStore  # noqa: E402
from stockbook.ledger import Ledger  # noqa: E402
from stockbook.models import Item, Transaction  # noqa: E402
from stockbook.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "ShopName = {shop_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Display]\n"
    "CurrencySymbol = {currency_symbol}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    schema_version: str
    shop_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "stockbook.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        shop_name: str = "Test Shop",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        currency_symbol: str = "$",
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                shop_name=shop_name,
                schema_version=schema_version,
                currency_symbol=currency_symbol,
            ),
            encoding="utf-8",
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            schema_version=schema_version,
            shop_name=shop_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# In-memory store fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def ledger() -> Ledger:
    return Ledger()


@pytest.fixture
def catalog(ledger: Ledger) -> CatalogStore:
    return CatalogStore(ledger)


@pytest.fixture
def reconciler(catalog: CatalogStore, ledger: Ledger) -> core_logic.StockReconciler:
    return core_logic.StockReconciler(catalog, ledger)


@pytest.fixture
def widget(catalog: CatalogStore) -> Item:
    """A Tools item holding five units, bought at 10 and sold at 15."""

    return catalog.add_item(
        name="Widget",
        category="Tools",
        stock=5,
        cost_price=Decimal("10"),
        selling_price=Decimal("15"),
    )


@pytest.fixture
def make_item() -> Callable[..., Item]:
    """Build standalone items for aggregation tests."""

    counter = {"next": 0}

    def _make(
        name: str = "Item",
        category: str = "General",
        stock: int = 0,
        cost_price: str = "0",
        selling_price: str = "0",
        item_id: str | None = None,
    ) -> Item:
        counter["next"] += 1
        return Item(
            item_id=item_id or f"I-{counter['next']}",
            name=name,
            category=category,
            stock=stock,
            cost_price=Decimal(cost_price),
            selling_price=Decimal(selling_price),
        )

    return _make


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """Build standalone transactions for aggregation tests."""

    counter = {"next": 0}

    def _make(
        item: Item,
        transaction_type: constants.TransactionType,
        quantity: int,
        price_per_unit: str,
        *,
        timestamp: datetime | None = None,
    ) -> Transaction:
        counter["next"] += 1
        price = Decimal(price_per_unit)
        return Transaction(
            transaction_id=f"T-{counter['next']}",
            item_id=item.item_id,
            item_name=item.name,
            transaction_type=transaction_type,
            quantity=quantity,
            price_per_unit=price,
            total_amount=quantity * price,
            timestamp=timestamp or datetime(2025, 1, 1, 12, counter["next"], tzinfo=UTC),
        )

    return _make


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="stockbook-cli", description="Stockbook CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
