#!/usr/bin/env python3
"""
Catalog Report Script

Prints the configured catalog with final (discounted) prices and initial stock,
so a CATALOG_FILE can be checked before the service starts.

Usage:
    python show_catalog.py
    python show_catalog.py --catalog my_catalog.json
    python show_catalog.py --group bloodlines
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.catalog import load_catalog
from config.settings import Settings
from domain.catalog import Catalog
from services.pricing_service import compute_final_price, format_price


def render_catalog(catalog: Catalog, group_id: Optional[str] = None) -> List[str]:
    """Report lines for every group, or only `group_id`."""

    lines: List[str] = []
    for group in catalog.groups.values():
        if group_id and group.group_id != group_id:
            continue

        lines.append("=" * 60)
        lines.append(f"{group.title} ({group.group_id})")
        lines.append("=" * 60)
        for item in group.items:
            final = compute_final_price(item.price, item.discount_percent)
            discount = f" (-{item.discount_percent}% from {format_price(item.price)})" if item.discount_percent else ""
            popular = "  [popular]" if item.popular else ""
            lines.append(
                f"  {item.item_id:<16} {item.name:<16} stock {item.stock:>4}  {format_price(final)}{discount}{popular}"
            )
        lines.append("")
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Show the shop catalog with final prices and initial stock",
    )
    parser.add_argument(
        "--catalog",
        "-c",
        help="Path to a JSON catalog file (defaults to CATALOG_FILE or the built-in catalog)"
    )
    parser.add_argument(
        "--group",
        "-g",
        help="Only show this catalog group"
    )
    args = parser.parse_args(argv)

    try:
        path = Path(args.catalog) if args.catalog else Settings.from_env().catalog_file
        catalog = load_catalog(path)
    except RuntimeError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    if args.group and catalog.get_group(args.group) is None:
        print(f"Unknown group: {args.group}", file=sys.stderr)
        return 1

    for line in render_catalog(catalog, args.group):
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
