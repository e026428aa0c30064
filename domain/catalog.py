"""
Domain: Catalog groups and items.

Catalog entries are immutable and configuration-loaded. A CatalogGroup owns an
ordered sequence of CatalogItems; the initial stock of each item seeds the
stock ledger at process start.

This module contains only pure domain entities: no I/O, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Mapping, Optional, Tuple


@dataclass(frozen=True, slots=True)
class CatalogItem:
    """
    A sellable item within a catalog group.

    price is expressed in whole currency units; discount_percent is 0-100.
    """

    item_id: str
    name: str
    stock: int
    price: int
    discount_percent: int = 0
    popular: bool = False

    def __post_init__(self) -> None:
        if not self.item_id:
            raise ValueError("item_id must not be empty")
        if self.stock < 0:
            raise ValueError("stock cannot be negative")
        if self.price < 0:
            raise ValueError("price cannot be negative")
        if not 0 <= self.discount_percent <= 100:
            raise ValueError("discount_percent must be between 0 and 100")


@dataclass(frozen=True, slots=True)
class CatalogGroup:
    """A titled, ordered group of items (one shop)."""

    group_id: str
    title: str
    items: Tuple[CatalogItem, ...]

    def __post_init__(self) -> None:
        seen = set()
        for item in self.items:
            if item.item_id in seen:
                raise ValueError(f"duplicate item_id {item.item_id!r} in group {self.group_id!r}")
            seen.add(item.item_id)

    def get_item(self, item_id: str | None) -> Optional[CatalogItem]:
        for item in self.items:
            if item.item_id == item_id:
                return item
        return None

    def default_item(self) -> Optional[CatalogItem]:
        """The first popular item, or the first item when none is flagged popular."""

        for item in self.items:
            if item.popular:
                return item
        return self.items[0] if self.items else None


@dataclass(frozen=True, slots=True)
class Catalog:
    """All catalog groups keyed by group_id, in configuration order."""

    groups: Mapping[str, CatalogGroup]

    def get_group(self, group_id: str) -> Optional[CatalogGroup]:
        return self.groups.get(group_id)

    def get_item(self, group_id: str, item_id: str | None) -> Optional[CatalogItem]:
        group = self.groups.get(group_id)
        if group is None:
            return None
        return group.get_item(item_id)

    def iter_items(self) -> Iterator[tuple[CatalogGroup, CatalogItem]]:
        for group in self.groups.values():
            for item in group.items:
                yield group, item
