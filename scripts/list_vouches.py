#!/usr/bin/env python3
"""
Vouch Listing Script

Prints the latest anonymous vouches from the configured storage backend
(VOUCH_STORAGE_BACKEND), or exports them as JSON.

Usage:
    python list_vouches.py
    python list_vouches.py --limit 10
    python list_vouches.py --file vouches.json --export backup.json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import Settings
from repositories.vouch_repository import JsonVouchRepository, VouchRepository, build_vouch_repository
from services.notices import vouches_listing
from services.vouch_flow import LISTING_LIMITS


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="List or export anonymous vouches",
    )
    parser.add_argument(
        "--limit",
        "-n",
        type=int,
        choices=LISTING_LIMITS,
        default=LISTING_LIMITS[0],
        help="How many of the latest vouches to show"
    )
    parser.add_argument(
        "--file",
        "-f",
        help="Read this JSON vouches file instead of the configured backend"
    )
    parser.add_argument(
        "--export",
        "-o",
        help="Write every vouch to this JSON file instead of printing"
    )
    args = parser.parse_args(argv)

    try:
        repository: VouchRepository
        if args.file:
            repository = JsonVouchRepository(Path(args.file))
        else:
            settings = Settings.from_env()
            repository = build_vouch_repository(
                settings.vouch_storage_backend,
                path=settings.vouches_file,
                table=settings.vouches_table,
            )

        records = repository.load()

        if args.export:
            Path(args.export).write_text(
                json.dumps([record.to_dict() for record in records], indent=2),
                encoding="utf-8",
            )
            print(f"✓ Exported {len(records)} vouches to {args.export}")
            return 0

        print(vouches_listing(records[: args.limit], args.limit))
        return 0

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
