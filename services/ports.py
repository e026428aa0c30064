"""
Collaborator ports.

The reservation core talks to the outside world only through these two
interfaces. Implementations may suspend; callers treat every failure as
non-fatal and never roll back a state change because a display or permission
update failed.
"""

from __future__ import annotations

from typing import Optional, Protocol


class Messenger(Protocol):
    """Send, edit and fetch messages within a scope."""

    async def send(self, scope: str, content: str) -> Optional[str]:
        """Send a message and return its id."""
        ...

    async def edit(self, scope: str, message_id: str, content: str) -> None:
        ...

    async def fetch(self, scope: str, message_id: str) -> Optional[str]:
        """Return the current content of a message, or None if it is gone."""
        ...


class Provisioner(Protocol):
    """Private scopes per buyer and their visibility."""

    async def create_lobby(self, buyer_id: str) -> str:
        ...

    async def find_lobby(self, buyer_id: str) -> Optional[str]:
        ...

    async def create_shop(self, buyer_id: str, group_id: str, title: str) -> str:
        ...

    async def find_shop(self, buyer_id: str, group_id: str) -> Optional[str]:
        ...

    async def show_scope(self, scope: str, buyer_id: str) -> None:
        ...

    async def hide_scope(self, scope: str, buyer_id: str) -> None:
        ...

    async def grant_staff(self, scope: str) -> None:
        ...

    async def rename_scope(self, scope: str, name: str) -> None:
        ...

    def scope_owner(self, scope: str) -> Optional[str]:
        """Buyer who owns the scope, or None for unknown scopes. Must not suspend."""
        ...

    def scope_group(self, scope: str) -> Optional[str]:
        """Catalog group a shop scope sells, or None for lobbies and unknown scopes. Must not suspend."""
        ...


__all__ = ["Messenger", "Provisioner"]
