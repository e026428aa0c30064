"""
Stock ledger (in-process persistence).

Authoritative remaining-unit counters per (group_id, item_id). Counters are
seeded from the catalog at process start and never go below zero.

Every operation is a single step under a lock with no suspension point, so two
buyers racing for the last unit cannot both pass the stock check.

Release is clamped at the item's initial stock. In correct operation every
reservation is released exactly once and the clamp never engages; when it does,
an error is logged because it means release bookkeeping went wrong somewhere.
"""

from __future__ import annotations

import logging
import threading
from typing import Dict, Tuple

from domain.catalog import Catalog
from domain.errors import ItemNotFoundError

logger = logging.getLogger(__name__)

StockKey = Tuple[str, str]


class StockLedger:
    """Remaining units per (group_id, item_id)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._remaining: Dict[StockKey, int] = {}
        self._initial: Dict[StockKey, int] = {}

    def init_from_catalog(self, catalog: Catalog) -> None:
        """Reset every counter to the catalog's initial stock."""

        with self._lock:
            self._remaining.clear()
            self._initial.clear()
            for group, item in catalog.iter_items():
                key = (group.group_id, item.item_id)
                self._initial[key] = item.stock
                self._remaining[key] = item.stock

        logger.info("Stock initialized from catalog (%d items)", len(self._initial))

    def get_remaining(self, group_id: str, item_id: str) -> int:
        """Remaining units; 0 for unknown items."""

        with self._lock:
            return self._remaining.get((group_id, item_id), 0)

    def get_initial(self, group_id: str, item_id: str) -> int:
        with self._lock:
            return self._initial.get((group_id, item_id), 0)

    def reserve(self, group_id: str, item_id: str, quantity: int) -> bool:
        """
        Take `quantity` units if available.

        Returns True on success. Returns False, leaving the counter untouched,
        when the item is unknown or fewer than `quantity` units remain.
        """

        if quantity < 1:
            raise ValueError("quantity must be >= 1")

        key = (group_id, item_id)
        with self._lock:
            current = self._remaining.get(key)
            if current is None or current < quantity:
                return False
            self._remaining[key] = current - quantity
            return True

    def release(self, group_id: str, item_id: str, quantity: int) -> int:
        """
        Return `quantity` units to stock and return the new remaining count.

        Raises:
            ItemNotFoundError: If the item was never initialized
            ValueError: If quantity is below 1
        """

        if quantity < 1:
            raise ValueError("quantity must be >= 1")

        key = (group_id, item_id)
        with self._lock:
            if key not in self._remaining:
                raise ItemNotFoundError(group_id, item_id)

            restored = self._remaining[key] + quantity
            ceiling = self._initial[key]
            if restored > ceiling:
                logger.error(
                    "Release of %d x %s:%s would exceed initial stock %d (at %d); clamping",
                    quantity, group_id, item_id, ceiling, self._remaining[key],
                )
                restored = ceiling
            self._remaining[key] = restored
            return restored

    def snapshot(self) -> Dict[StockKey, int]:
        with self._lock:
            return dict(self._remaining)


__all__ = ["StockKey", "StockLedger"]
