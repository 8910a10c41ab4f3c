"""Append-only storage for purchase and sale transactions.

The ledger performs no validation; the stock reconciler is the only caller of
:meth:`Ledger.append`. Entries are kept in insertion order internally and
presented newest-first.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List

from . import log
from .models import Transaction


class Ledger:
    """Ordered, append-only collection of :class:`Transaction` records."""

    def __init__(self) -> None:
        self._entries: List[Transaction] = []

    @classmethod
    def from_records(cls, transactions: Iterable[Transaction]) -> "Ledger":
        """Rehydrate a ledger from records listed oldest-first."""

        ledger = cls()
        ledger._entries.extend(transactions)
        log.debug("Loaded ledger with %d transactions", len(ledger._entries))
        return ledger

    def append(self, transaction: Transaction) -> None:
        """Record ``transaction`` as the most recent entry."""

        self._entries.append(transaction)

    def remove_by_item_id(self, item_id: str) -> int:
        """Drop every transaction referencing ``item_id``.

        Returns the number of removed entries; zero when nothing matched.
        """

        kept = [entry for entry in self._entries if entry.item_id != item_id]
        removed = len(self._entries) - len(kept)
        self._entries[:] = kept
        if removed:
            log.info("Removed %d transactions for deleted item '%s'", removed, item_id)
        return removed

    def discard(self, transaction_id: str) -> None:
        """Remove a single entry; used to roll back a half-applied recording."""

        self._entries[:] = [entry for entry in self._entries if entry.transaction_id != transaction_id]

    def list_transactions(self) -> List[Transaction]:
        """Return all transactions, most recent first."""

        return list(reversed(self._entries))

    def __iter__(self) -> Iterator[Transaction]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
