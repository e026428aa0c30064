"""
Domain: Anonymous vouches.

A vouch is a post-completion star rating with a short comment. The persisted
form carries no buyer identity: only stars, comment, timestamp and an opaque
reference code.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

from .time import require_utc_timestamp

REF_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_STARS = 5


def random_ref(length: int = 4) -> str:
    """Short reference code without ambiguous characters (no I, O, 0, 1)."""
    return "".join(secrets.choice(REF_ALPHABET) for _ in range(length))


def stars_line(stars: int) -> str:
    filled = max(0, min(MAX_STARS, stars))
    return "*" * filled + "-" * (MAX_STARS - filled)


@dataclass(frozen=True, slots=True)
class VouchRecord:
    stars: int
    comment: str
    at: datetime
    ref: str

    def __post_init__(self) -> None:
        if not 1 <= self.stars <= MAX_STARS:
            raise ValueError("stars must be between 1 and 5")
        require_utc_timestamp("at", self.at)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stars": self.stars,
            "comment": self.comment,
            "at": self.at.isoformat(),
            "ref": self.ref,
        }

    @classmethod
    def from_dict(cls, row: Mapping[str, Any]) -> "VouchRecord":
        """
        Build a record from its stored form.

        `at` may be an ISO-8601 string or epoch milliseconds (older files).
        """

        raw_at = row["at"]
        if isinstance(raw_at, (int, float)):
            at = datetime.fromtimestamp(raw_at / 1000, tz=timezone.utc)
        else:
            at = datetime.fromisoformat(str(raw_at).replace("Z", "+00:00"))
            if at.tzinfo is None or at.utcoffset() is None:
                at = at.replace(tzinfo=timezone.utc)
            at = at.astimezone(timezone.utc)

        return cls(
            stars=int(row["stars"]),
            comment=str(row.get("comment", "")),
            at=at,
            ref=str(row.get("ref", "")),
        )
