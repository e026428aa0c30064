"""
Shop session repository (in-process cache).

One pre-reservation selection per buyer. Sessions are overwritten freely and
are not authoritative for stock.
"""

from __future__ import annotations

from typing import Dict, Optional

from domain.shop_session import ShopSession


class SessionRepository:

    def __init__(self) -> None:
        self._sessions: Dict[str, ShopSession] = {}

    def get(self, buyer_id: str) -> Optional[ShopSession]:
        return self._sessions.get(buyer_id)

    def save(self, session: ShopSession) -> ShopSession:
        self._sessions[session.buyer_id] = session
        return session

    def delete(self, buyer_id: str) -> None:
        self._sessions.pop(buyer_id, None)


__all__ = ["SessionRepository"]
