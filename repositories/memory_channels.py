"""
In-memory messaging and provisioning collaborators.

These back the HTTP shell, where a client polls a scope's messages instead of
reading a chat channel, and they double as test collaborators. State lives in
process memory only.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from domain.actor import short_id


@dataclass(slots=True)
class ScopeMessage:
    message_id: str
    content: str
    edits: int = 0


@dataclass(slots=True)
class ScopeRecord:
    """
    A private scope.

    kind is "lobby" or "shop"; group_id is set for shops only.
    """
    scope: str
    owner_id: str
    kind: str
    name: str
    group_id: Optional[str] = None
    topic: Optional[str] = None
    visible_to_owner: bool = True
    staff_visible: bool = False
    messages: List[ScopeMessage] = field(default_factory=list)


class InMemoryChannels:
    """Implements both the Messenger and the Provisioner ports."""

    def __init__(self) -> None:
        self._scopes: Dict[str, ScopeRecord] = {}
        self._ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Provisioner
    # ------------------------------------------------------------------

    async def create_lobby(self, buyer_id: str) -> str:
        scope = f"lobby-{buyer_id}"
        if scope not in self._scopes:
            self._scopes[scope] = ScopeRecord(
                scope=scope,
                owner_id=buyer_id,
                kind="lobby",
                name=f"start-here-{short_id(buyer_id)}",
                topic="start here - private automated support",
            )
        return scope

    async def find_lobby(self, buyer_id: str) -> Optional[str]:
        scope = f"lobby-{buyer_id}"
        return scope if scope in self._scopes else None

    async def create_shop(self, buyer_id: str, group_id: str, title: str) -> str:
        scope = f"{group_id}-{buyer_id}"
        if scope not in self._scopes:
            self._scopes[scope] = ScopeRecord(
                scope=scope,
                owner_id=buyer_id,
                kind="shop",
                name=f"{group_id}-{short_id(buyer_id)}",
                group_id=group_id,
                topic=f"{title} - private shop",
            )
        return scope

    async def find_shop(self, buyer_id: str, group_id: str) -> Optional[str]:
        scope = f"{group_id}-{buyer_id}"
        return scope if scope in self._scopes else None

    async def show_scope(self, scope: str, buyer_id: str) -> None:
        self._require(scope).visible_to_owner = True

    async def hide_scope(self, scope: str, buyer_id: str) -> None:
        self._require(scope).visible_to_owner = False

    async def grant_staff(self, scope: str) -> None:
        self._require(scope).staff_visible = True

    async def rename_scope(self, scope: str, name: str) -> None:
        self._require(scope).name = name[:90]

    def scope_owner(self, scope: str) -> Optional[str]:
        record = self._scopes.get(scope)
        return record.owner_id if record else None

    def scope_group(self, scope: str) -> Optional[str]:
        record = self._scopes.get(scope)
        return record.group_id if record and record.kind == "shop" else None

    # ------------------------------------------------------------------
    # Messenger
    # ------------------------------------------------------------------

    async def send(self, scope: str, content: str) -> Optional[str]:
        record = self._require(scope)
        message = ScopeMessage(message_id=str(next(self._ids)), content=content)
        record.messages.append(message)
        return message.message_id

    async def edit(self, scope: str, message_id: str, content: str) -> None:
        message = self._find_message(scope, message_id)
        if message is None:
            raise KeyError(f"message {message_id} not found in {scope}")
        message.content = content
        message.edits += 1

    async def fetch(self, scope: str, message_id: str) -> Optional[str]:
        message = self._find_message(scope, message_id)
        return message.content if message else None

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_scope(self, scope: str) -> Optional[ScopeRecord]:
        return self._scopes.get(scope)

    def messages(self, scope: str) -> List[ScopeMessage]:
        record = self._scopes.get(scope)
        return list(record.messages) if record else []

    def _require(self, scope: str) -> ScopeRecord:
        record = self._scopes.get(scope)
        if record is None:
            raise KeyError(f"unknown scope {scope}")
        return record

    def _find_message(self, scope: str, message_id: str) -> Optional[ScopeMessage]:
        record = self._scopes.get(scope)
        if record is None:
            return None
        for message in record.messages:
            if message.message_id == message_id:
                return message
        return None


__all__ = ["InMemoryChannels", "ScopeMessage", "ScopeRecord"]
