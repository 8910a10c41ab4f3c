"""In-memory catalog of stocked items.

The catalog owns every :class:`~stockbook.models.Item`. Items are frozen, so
edits replace the stored record with a merged copy; snapshots returned by
:meth:`CatalogStore.list_items` never change underneath a caller. Deleting an
item cascades into the :class:`~stockbook.ledger.Ledger` so no transaction is
left pointing at a missing item.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from . import log
from .exceptions import InvalidInputError, MissingReferenceError
from .ledger import Ledger
from .models import (
    Item,
    generate_id,
    require_category,
    require_name,
    require_nonnegative_money,
    require_stock,
)


Money = Union[Decimal, int, str]

_FIELD_VALIDATORS: Dict[str, Callable[[Any], Any]] = {
    "name": require_name,
    "category": require_category,
    "stock": require_stock,
    "cost_price": require_nonnegative_money,
    "selling_price": require_nonnegative_money,
}


class CatalogStore:
    """Owns the set of items and the cascade into the ledger on delete."""

    def __init__(self, ledger: Ledger) -> None:
        self._ledger = ledger
        self._items: Dict[str, Item] = {}
        self._issued_ids: set[str] = set()

    @classmethod
    def from_records(cls, items: Iterable[Item], *, ledger: Ledger) -> "CatalogStore":
        """Rehydrate a catalog from persisted items, keeping their ids.

        Stored records pass through the same field checks as
        :meth:`update_item`, so a hand-edited row cannot smuggle in a
        negative stock level or price.

        Raises:
            InvalidInputError: On a duplicate id or an invalid field value.
        """

        catalog = cls(ledger)
        for item in items:
            if item.item_id in catalog._items:
                raise InvalidInputError(f"Duplicate item id: {item.item_id}")
            try:
                checked = {name: validator(getattr(item, name)) for name, validator in _FIELD_VALIDATORS.items()}
            except InvalidInputError as exc:
                raise InvalidInputError(f"Invalid stored item '{item.item_id}': {exc}") from exc
            item = replace(item, **checked)
            catalog._items[item.item_id] = item
            catalog._issued_ids.add(item.item_id)
        log.debug("Loaded catalog with %d items", len(catalog._items))
        return catalog

    def _fresh_id(self) -> str:
        candidate = generate_id("I")
        while candidate in self._issued_ids:
            candidate = generate_id("I")
        self._issued_ids.add(candidate)
        return candidate

    def add_item(
        self,
        name: str,
        category: str,
        stock: int = 0,
        cost_price: Money = Decimal("0"),
        selling_price: Money = Decimal("0"),
    ) -> Item:
        """Insert a new item under a freshly generated id.

        Args:
            name (str): Display name; must not be blank.
            category (str): Free-form grouping label, matched exactly in
                category rollups.
            stock (int): Opening stock level.
            cost_price (Decimal | int | str): Unit purchase cost.
            selling_price (Decimal | int | str): Unit selling price.

        Returns:
            Item: The stored record.

        Raises:
            InvalidInputError: If any field fails validation. Nothing is
                inserted in that case.
        """

        item = Item(
            item_id="",
            name=require_name(name),
            category=require_category(category),
            stock=require_stock(stock),
            cost_price=require_nonnegative_money(cost_price),
            selling_price=require_nonnegative_money(selling_price),
        )
        item = replace(item, item_id=self._fresh_id())
        self._items[item.item_id] = item
        log.info("Added item '%s' (%s) in category '%s'", item.item_id, item.name, item.category)
        return item

    def update_item(self, item_id: str, /, **fields: Any) -> Item:
        """Merge ``fields`` into the stored item and return the new record.

        Selling below cost is allowed; only per-field checks apply.

        Raises:
            MissingReferenceError: If ``item_id`` is unknown.
            InvalidInputError: If a field name is unknown or a value fails
                validation.
        """

        current = self.get_item(item_id)
        changes: Dict[str, Any] = {}
        for field_name, value in fields.items():
            validator = _FIELD_VALIDATORS.get(field_name)
            if validator is None:
                log.error("Rejected update of unknown item field '%s'", field_name)
                raise InvalidInputError(f"Unknown item field: {field_name}")
            changes[field_name] = validator(value)

        updated = replace(current, **changes)
        self._items[item_id] = updated
        log.info("Updated item '%s': %s", item_id, ", ".join(sorted(changes)) or "no changes")
        return updated

    def delete_item(self, item_id: str) -> None:
        """Remove the item and every transaction that references it.

        Deleting an unknown id is a no-op.
        """

        if self._items.pop(item_id, None) is None:
            log.debug("Delete ignored for unknown item '%s'", item_id)
            return
        self._ledger.remove_by_item_id(item_id)
        log.info("Deleted item '%s'", item_id)

    def get_item(self, item_id: str) -> Item:
        """Resolve an item by id.

        Raises:
            MissingReferenceError: If ``item_id`` is absent from the catalog.
        """

        try:
            return self._items[item_id]
        except KeyError as exc:
            log.warning("Item lookup failed for id '%s'", item_id)
            raise MissingReferenceError(item_id) from exc

    def find_item(self, item_id: str) -> Optional[Item]:
        """Resolve an item by id, returning ``None`` when it does not exist."""

        return self._items.get(item_id)

    def list_items(self) -> List[Item]:
        """Return every item in insertion order."""

        return list(self._items.values())

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)
