"""
Vouch repository (persistence).

Append-only, newest-first list of anonymous vouches. Two backends:
- JsonVouchRepository: a JSON array in a local file, read in full and rewritten
  in full on every append. Entries that do not parse are skipped on read but
  kept in the file.
- SupabaseVouchRepository: a Supabase table.

Reads never fail on a missing or corrupt store; they return an empty list.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List, Optional, Protocol

from domain.vouch import VouchRecord

logger = logging.getLogger(__name__)


class VouchRepository(Protocol):
    def load(self) -> List[VouchRecord]:
        """All vouches, newest first."""
        ...

    def append(self, record: VouchRecord) -> None:
        ...


class JsonVouchRepository:
    """File-backed vouches."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def ensure_file(self) -> None:
        if not self._path.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text("[]", encoding="utf-8")

    def _read_rows(self) -> List[Any]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("Could not read vouches file %s: %s", self._path, e)
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Vouches file %s is not valid JSON; treating as empty", self._path)
            return []

        if not isinstance(parsed, list):
            logger.warning("Vouches file %s does not hold a list; treating as empty", self._path)
            return []
        return parsed

    def load(self) -> List[VouchRecord]:
        records: List[VouchRecord] = []
        for row in self._read_rows():
            try:
                records.append(VouchRecord.from_dict(row))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed vouch entry in %s: %r", self._path, row)
        return records

    def append(self, record: VouchRecord) -> None:
        """Prepend `record` and rewrite the file; entries that do not parse are kept as stored."""

        rows = self._read_rows()
        rows.insert(0, record.to_dict())
        self.ensure_file()
        self._path.write_text(json.dumps(rows, indent=2, ensure_ascii=False), encoding="utf-8")


class SupabaseVouchRepository:
    """Supabase-backed vouches."""

    def __init__(self, client: Any, table: str = "vouches") -> None:
        self._client = client
        self._table = table

    def load(self) -> List[VouchRecord]:
        response = (
            self._client.table(self._table)
            .select("*")
            .order("at", desc=True)
            .execute()
        )

        error = getattr(response, "error", None)
        if error:
            logger.warning("Failed to load vouches from %s: %s", self._table, error)
            return []

        rows = getattr(response, "data", None) or []
        records: List[VouchRecord] = []
        for row in rows:
            try:
                records.append(VouchRecord.from_dict(row))
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed vouch row in %s: %r", self._table, row)
        return records

    def append(self, record: VouchRecord) -> None:
        response = self._client.table(self._table).insert(record.to_dict()).execute()

        error = getattr(response, "error", None)
        if error:
            raise RuntimeError(f"Failed to insert vouch: {error}")


def build_vouch_repository(
    backend: str,
    *,
    path: Optional[Path] = None,
    table: str = "vouches",
) -> VouchRepository:
    """Select the vouch backend named by configuration."""

    if backend == "supabase":
        from repositories.client import get_supabase

        return SupabaseVouchRepository(get_supabase(), table=table)
    if backend == "json":
        return JsonVouchRepository(path or Path("vouches.json"))
    raise ValueError(f"Unknown vouch storage backend: {backend!r}")


__all__ = [
    "VouchRepository",
    "JsonVouchRepository",
    "SupabaseVouchRepository",
    "build_vouch_repository",
]
