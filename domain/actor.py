"""
Domain: Acting identity.

Every buyer action carries the identity that triggered it. Staff members hold
an elevated role that lets them act on orders they do not own.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Actor:
    user_id: str
    is_staff: bool = False

    def can_manage(self, owner_id: str) -> bool:
        """True when this actor owns the resource or holds the elevated role."""
        return self.is_staff or self.user_id == owner_id


def short_id(user_id: str) -> str:
    """Last four characters of an identifier, used in scope names."""
    return str(user_id)[-4:]
