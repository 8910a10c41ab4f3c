"""Unit tests for the stock reconciler and runtime context management."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import MagicMock, Mock

import pytest

from stockbook import constants, core_logic, data_manager, reports
from stockbook.exceptions import (
    InsufficientStockError,
    InvalidInputError,
    MissingReferenceError,
)


def _stock_levels(catalog):
    return {item.item_id: item.stock for item in catalog.list_items()}


# ---------------------------------------------------------------------------
# Stock reconciler
# ---------------------------------------------------------------------------


def test_sale_reduces_stock_and_appends(reconciler, catalog, ledger, widget):
    """A valid sale should append one transaction and lower stock."""

    transaction = reconciler.record_transaction(widget.item_id, "sale", 3, Decimal("15"))

    assert catalog.get_item(widget.item_id).stock == 2
    assert ledger.list_transactions() == [transaction]
    assert transaction.total_amount == Decimal("45")
    assert transaction.transaction_type is constants.TransactionType.SALE


def test_purchase_increases_stock(reconciler, catalog, widget):
    transaction = reconciler.record_purchase(widget.item_id, 7, "9.50")

    assert catalog.get_item(widget.item_id).stock == 12
    assert transaction.total_amount == Decimal("66.50")
    assert transaction.transaction_type is constants.TransactionType.PURCHASE


def test_sale_of_entire_stock_is_allowed(reconciler, catalog, widget):
    """Selling exactly the available stock should leave zero, not fail."""

    reconciler.record_sale(widget.item_id, 5, "15")

    assert catalog.get_item(widget.item_id).stock == 0


def test_transaction_snapshots_item_name(reconciler, catalog, widget):
    """Renaming an item later should not rewrite earlier transactions."""

    transaction = reconciler.record_sale(widget.item_id, 1, "15")
    catalog.update_item(widget.item_id, name="Renamed Widget")

    assert transaction.item_name == "Widget"
    assert reconciler.ledger.list_transactions()[0].item_name == "Widget"


def test_total_amount_survives_price_edits(reconciler, catalog, ledger, widget):
    """total_amount is computed once and never follows price changes."""

    reconciler.record_sale(widget.item_id, 2, "15")
    catalog.update_item(widget.item_id, selling_price="99", cost_price="50")

    assert ledger.list_transactions()[0].total_amount == Decimal("30")


def test_total_amount_is_exact_decimal(reconciler, widget):
    """Decimal multiplication should not introduce float rounding."""

    transaction = reconciler.record_purchase(widget.item_id, 3, "0.1")

    assert transaction.total_amount == Decimal("0.3")


def test_record_transaction_uses_supplied_timestamp(reconciler, widget):
    moment = datetime(2025, 6, 1, 9, 30, tzinfo=UTC)

    transaction = reconciler.record_sale(widget.item_id, 1, "15", timestamp=moment)

    assert transaction.timestamp == moment


def test_record_transaction_defaults_to_now(reconciler, widget, set_fixed_datetime):
    moment = set_fixed_datetime(datetime(2025, 10, 30, 12, 0, tzinfo=UTC))

    transaction = reconciler.record_purchase(widget.item_id, 1, "10")

    assert transaction.timestamp == moment


def test_transaction_ids_are_unique(reconciler, widget):
    ids = {reconciler.record_purchase(widget.item_id, 1, "10").transaction_id for _ in range(20)}

    assert len(ids) == 20


def test_insufficient_stock_blocks_sale(reconciler, catalog, ledger, widget):
    """Selling more than the stock should fail and change nothing."""

    with pytest.raises(InsufficientStockError) as excinfo:
        reconciler.record_sale(widget.item_id, 6, "15")

    assert excinfo.value.requested == 6
    assert excinfo.value.available == 5
    assert catalog.get_item(widget.item_id).stock == 5
    assert len(ledger) == 0


def test_unknown_item_is_rejected(reconciler, ledger):
    with pytest.raises(MissingReferenceError):
        reconciler.record_purchase("I-missing", 1, "1")
    assert len(ledger) == 0


@pytest.mark.parametrize(
    ("transaction_type", "quantity", "price"),
    [
        ("sale", 0, "15"),
        ("sale", -2, "15"),
        ("purchase", 1.5, "10"),
        ("purchase", True, "10"),
        ("purchase", "3", "10"),
        ("purchase", 1, "-1"),
        ("purchase", 1, "not-a-price"),
        ("refund", 1, "10"),
    ],
)
def test_invalid_input_is_rejected(reconciler, catalog, ledger, widget, transaction_type, quantity, price):
    """Malformed requests should raise InvalidInputError and be no-ops."""

    with pytest.raises(InvalidInputError):
        reconciler.record_transaction(widget.item_id, transaction_type, quantity, price)

    assert catalog.get_item(widget.item_id).stock == 5
    assert len(ledger) == 0


def test_invalid_input_is_also_value_error(reconciler, widget):
    with pytest.raises(ValueError):
        reconciler.record_sale(widget.item_id, 0, "15")


def test_failed_stock_write_rolls_back_transaction(reconciler, catalog, ledger, widget, monkeypatch):
    """If the stock update fails, the appended transaction must be removed."""

    monkeypatch.setattr(catalog, "update_item", Mock(side_effect=RuntimeError("disk on fire")))

    with pytest.raises(RuntimeError):
        reconciler.record_purchase(widget.item_id, 2, "10")

    assert len(ledger) == 0
    assert catalog.get_item(widget.item_id).stock == 5


def test_stock_never_negative_across_sequence(reconciler, catalog, ledger, widget):
    """Random-ish mixes of purchases and sales should keep stock >= 0."""

    requests = [
        ("sale", 4),
        ("sale", 4),
        ("purchase", 3),
        ("sale", 5),
        ("sale", 1),
        ("purchase", 10),
        ("sale", 11),
        ("sale", 10),
    ]
    for transaction_type, quantity in requests:
        before = (len(ledger), _stock_levels(catalog))
        try:
            reconciler.record_transaction(widget.item_id, transaction_type, quantity, "1")
        except InsufficientStockError:
            assert (len(ledger), _stock_levels(catalog)) == before
        assert catalog.get_item(widget.item_id).stock >= 0

    assert catalog.get_item(widget.item_id).stock == 2


# ---------------------------------------------------------------------------
# Runtime/context management
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path):
    return data_manager.ConfigSettings(
        data_file=tmp_path / "stockbook.xlsx",
        shop_name="Test Shop",
        schema_version=constants.EXPECTED_SCHEMA_VERSION,
    )


def test_load_runtime_context_returns_context(monkeypatch, tmp_path, settings, make_item, make_transaction):
    """load_runtime_context should assemble settings, workbook, and stores."""

    config_path = tmp_path / "config.ini"
    parser = Mock(name="parser")
    workbook = Mock(name="workbook")
    item = make_item(name="Widget", stock=2)
    transaction = make_transaction(item, constants.TransactionType.PURCHASE, 2, "1")

    find_config_file = Mock(return_value=config_path)
    read_config = Mock(return_value=parser)
    parse_settings = Mock(return_value=settings)
    open_workbook = Mock(return_value=workbook)

    monkeypatch.setattr(data_manager, "find_config_file", find_config_file)
    monkeypatch.setattr(data_manager, "read_config", read_config)
    monkeypatch.setattr(data_manager, "parse_settings", parse_settings)
    monkeypatch.setattr(data_manager, "open_workbook", open_workbook)
    monkeypatch.setattr(data_manager, "iter_items", Mock(return_value=[item]))
    monkeypatch.setattr(data_manager, "iter_transactions", Mock(return_value=[transaction]))

    context = core_logic.load_runtime_context(config_path)

    assert context.settings is settings
    assert context.workbook is workbook
    assert context.catalog.list_items() == [item]
    assert context.ledger.list_transactions() == [transaction]
    assert context.reconciler.catalog is context.catalog
    assert context.reconciler.ledger is context.ledger
    find_config_file.assert_called_once_with(config_path)
    read_config.assert_called_once_with(config_path.resolve())
    parse_settings.assert_called_once_with(parser, base_path=config_path.resolve().parent)
    open_workbook.assert_called_once_with(settings.data_file)


def test_rehydrated_catalog_cascades_into_rehydrated_ledger(monkeypatch, settings, make_item, make_transaction):
    item = make_item()
    monkeypatch.setattr(data_manager, "iter_items", Mock(return_value=[item]))
    monkeypatch.setattr(
        data_manager,
        "iter_transactions",
        Mock(return_value=[make_transaction(item, constants.TransactionType.PURCHASE, 1, "1")]),
    )

    context = core_logic.build_runtime_context(settings, Mock(name="workbook"))
    context.catalog.delete_item(item.item_id)

    assert len(context.ledger) == 0


def test_ensure_schema_version_rejects_mismatch(settings):
    """Schema mismatches should surface a RuntimeError."""

    context = core_logic.build_runtime_context(replace(settings, schema_version="0.9"), _empty_workbook_mock())
    with pytest.raises(RuntimeError):
        core_logic.ensure_schema_version(context)


def test_persist_context_writes_both_sheets(monkeypatch, settings, make_item):
    """persist_context should replace both sheets, then save to the data file."""

    context = core_logic.build_runtime_context(settings, _empty_workbook_mock())
    item = context.catalog.add_item("Widget", "Tools", stock=1)
    replace_items = Mock()
    replace_transactions = Mock()
    save_workbook = Mock()
    monkeypatch.setattr(data_manager, "replace_items", replace_items)
    monkeypatch.setattr(data_manager, "replace_transactions", replace_transactions)
    monkeypatch.setattr(data_manager, "save_workbook", save_workbook)

    core_logic.persist_context(context)

    replace_items.assert_called_once_with(context.workbook, [item])
    replace_transactions.assert_called_once_with(context.workbook, context.ledger)
    save_workbook.assert_called_once_with(context.workbook, destination=settings.data_file)


def _empty_workbook_mock() -> MagicMock:
    workbook = MagicMock(name="workbook")
    workbook.__getitem__.return_value.iter_rows.return_value = []
    return workbook


def test_naive_timestamp_is_stored_as_utc(reconciler, widget):
    """Naive datetimes are read as UTC so they sort against aware ones."""

    reconciler.record_purchase(widget.item_id, 1, "10")
    older = reconciler.record_sale(widget.item_id, 1, "15", timestamp=datetime(2024, 1, 1, 12, 0))

    assert older.timestamp == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    dashboard = reports.build_dashboard(reconciler.catalog.list_items(), reconciler.ledger.list_transactions())
    assert dashboard.recent_transactions[-1] is older


def test_non_datetime_timestamp_is_rejected(reconciler, catalog, ledger, widget):
    with pytest.raises(InvalidInputError):
        reconciler.record_sale(widget.item_id, 1, "15", timestamp="2024-01-01")

    assert catalog.get_item(widget.item_id).stock == 5
    assert len(ledger) == 0


def test_build_runtime_context_rejects_invalid_stored_item(settings, master_workbook_path):
    """A hand-edited row with negative stock must not load as a live item."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook["Items"].append(["I-x", "Bad", "Tools", -4, "1", "2"])

    with pytest.raises(InvalidInputError, match="I-x"):
        core_logic.build_runtime_context(settings, workbook)


def test_build_runtime_context_rejects_orphan_transactions(settings, master_workbook_path):
    """Every stored transaction must reference an item in the catalog."""

    workbook = data_manager.open_workbook(master_workbook_path)
    workbook["Items"].append(["I-1", "Widget", "Tools", 2, "10", "15"])
    workbook["Transactions"].append(
        ["T-1", "I-1", "Widget", "sale", 1, "15", "15", "2025-01-01T00:00:00+00:00"]
    )
    workbook["Transactions"].append(
        ["T-2", "I-gone", "Ghost", "sale", 1, "5", "5", "2025-01-02T00:00:00+00:00"]
    )

    with pytest.raises(InvalidInputError, match="I-gone"):
        core_logic.build_runtime_context(settings, workbook)


def test_build_runtime_context_accepts_consistent_workbook(settings, master_workbook_path):
    workbook = data_manager.open_workbook(master_workbook_path)
    workbook["Items"].append(["I-1", "Widget", "Tools", 2, "10", "15"])
    workbook["Transactions"].append(
        ["T-1", "I-1", "Widget", "sale", 1, "15", "15", "2025-01-01T00:00:00+00:00"]
    )

    context = core_logic.build_runtime_context(settings, workbook)

    assert context.catalog.get_item("I-1").stock == 2
    assert len(context.ledger) == 1
