"""
Domain: Pre-reservation shop session.

The buyer's in-progress selection before a reservation exists. It is a UI-state
cache, not authoritative for stock, overwritten freely and lost on restart.
"""

from __future__ import annotations

from dataclasses import dataclass


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass(slots=True)
class ShopSession:
    buyer_id: str
    group_id: str
    item_id: str
    quantity: int = 1

    def clamp_quantity(self, remaining: int) -> int:
        """Clamp the quantity to [1, max(1, remaining)] and return it."""

        self.quantity = clamp(self.quantity or 1, 1, max(1, remaining))
        return self.quantity
