"""
Catalog configuration.

The built-in catalog is used unless CATALOG_FILE points to a JSON document of
the form:

    {
      "bloodlines": {
        "title": "Bloodlines",
        "items": [
          {"id": "bl_basic", "name": "Basic", "stock": 30, "price": 25,
           "discountPercent": 20, "popular": false}
        ]
      }
    }

`discount_percent` is accepted as an alternative spelling of `discountPercent`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from domain.catalog import Catalog, CatalogGroup, CatalogItem

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_DATA: dict[str, Any] = {
    "bloodlines": {
        "title": "Bloodlines",
        "items": [
            {"id": "bl_basic", "name": "Basic", "stock": 30, "price": 25, "discountPercent": 20, "popular": False},
            {"id": "bl_premium", "name": "Premium", "stock": 12, "price": 40, "discountPercent": 12, "popular": True},
            {"id": "bl_full", "name": "Full", "stock": 7, "price": 60, "discountPercent": 17, "popular": False},
        ],
    },
    "gpo": {
        "title": "Grand Piece Online",
        "items": [
            {"id": "gpo_basic", "name": "Basic", "stock": 18, "price": 30, "discountPercent": 17, "popular": False},
            {"id": "gpo_premium", "name": "Premium", "stock": 10, "price": 55, "discountPercent": 18, "popular": True},
            {"id": "gpo_full", "name": "Full", "stock": 4, "price": 85, "discountPercent": 18, "popular": False},
        ],
    },
}


def _item_from_mapping(row: Mapping[str, Any]) -> CatalogItem:
    discount = row.get("discountPercent", row.get("discount_percent", 0))
    return CatalogItem(
        item_id=str(row.get("id") or row.get("item_id") or ""),
        name=str(row["name"]),
        stock=int(row.get("stock", 0)),
        price=int(row["price"]),
        discount_percent=int(discount or 0),
        popular=bool(row.get("popular", False)),
    )


def catalog_from_mapping(data: Mapping[str, Any]) -> Catalog:
    """Build a Catalog from its JSON-shaped mapping, preserving group and item order."""

    groups: dict[str, CatalogGroup] = {}
    for group_id, group in data.items():
        items = tuple(_item_from_mapping(row) for row in group.get("items", []))
        groups[group_id] = CatalogGroup(
            group_id=group_id,
            title=str(group.get("title", group_id)),
            items=items,
        )
    return Catalog(groups=groups)


def load_catalog(path: Optional[Path] = None) -> Catalog:
    """
    Load the catalog from `path`, or the built-in catalog when no path is given.

    Raises:
        RuntimeError: If the file cannot be read or does not describe a valid catalog.
    """

    if path is None:
        return catalog_from_mapping(DEFAULT_CATALOG_DATA)

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise RuntimeError(f"Failed to read catalog file {path}: {e}") from e

    if not isinstance(data, dict):
        raise RuntimeError(f"Catalog file {path} must contain a JSON object of groups")

    try:
        catalog = catalog_from_mapping(data)
    except (KeyError, TypeError, ValueError) as e:
        raise RuntimeError(f"Invalid catalog file {path}: {e}") from e

    logger.info("Loaded catalog with %d groups from %s", len(catalog.groups), path)
    return catalog


__all__ = ["DEFAULT_CATALOG_DATA", "catalog_from_mapping", "load_catalog"]
