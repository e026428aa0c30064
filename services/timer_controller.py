"""
Timer controller for reservation expiry and countdown refresh.

Per scope there is at most one live expiry timer and at most one live countdown
task at any instant.

- Expiry timers are `loop.call_later` handles. Scheduling always cancels the
  previous handle first and clears its reference, so an old deadline can never
  fire after a reschedule. A firing timer does not touch order state: it calls
  the bound `on_expire(scope)` callback, which posts an expire event onto the
  dispatcher queue.
- Countdown tasks tick on a fixed period, re-read the live deadline and stop
  themselves once the order is gone, completed, or past its deadline. The
  bound `on_tick(scope, text)` is awaited only when the MM:SS text changed.

Must be used from within a running asyncio event loop.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Dict, Optional, Tuple

from domain.time import format_mmss, utc_now

logger = logging.getLogger(__name__)

ExpireCallback = Callable[[str], None]
TickCallback = Callable[[str, str], Awaitable[None]]
DeadlineReader = Callable[[], Optional[datetime]]


class TimerController:

    def __init__(
        self,
        *,
        countdown_period: float = 1.0,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._period = countdown_period
        self._clock = clock
        self._expiries: Dict[str, Tuple[object, asyncio.TimerHandle]] = {}
        self._countdowns: Dict[str, asyncio.Task] = {}
        self._on_expire: Optional[ExpireCallback] = None
        self._on_tick: Optional[TickCallback] = None

    def bind(self, *, on_expire: ExpireCallback, on_tick: Optional[TickCallback] = None) -> None:
        self._on_expire = on_expire
        self._on_tick = on_tick

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def schedule_expiry(self, scope: str, deadline: datetime) -> None:
        """Arm the scope's expiry timer for `deadline`, replacing any previous one."""

        self.cancel_expiry(scope)

        loop = asyncio.get_running_loop()
        delay = max(0.0, (deadline - self._clock()).total_seconds())
        token = object()
        handle = loop.call_later(delay, self._fire_expiry, scope, token)
        self._expiries[scope] = (token, handle)
        logger.debug("Expiry for %s scheduled in %.1fs", scope, delay)

    def cancel_expiry(self, scope: str) -> bool:
        entry = self._expiries.pop(scope, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def has_expiry(self, scope: str) -> bool:
        return scope in self._expiries

    def _fire_expiry(self, scope: str, token: object) -> None:
        entry = self._expiries.get(scope)
        if entry is None or entry[0] is not token:
            # Replaced or cancelled after the loop had already queued the callback.
            return
        del self._expiries[scope]

        if self._on_expire is None:
            logger.warning("Expiry fired for %s but no handler is bound", scope)
            return
        self._on_expire(scope)

    # ------------------------------------------------------------------
    # Countdown
    # ------------------------------------------------------------------

    def start_countdown(self, scope: str, read_deadline: DeadlineReader) -> bool:
        """Start the scope's countdown task. Returns False if one is already running."""

        existing = self._countdowns.get(scope)
        if existing is not None and not existing.done():
            return False

        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_countdown(scope, read_deadline), name=f"countdown:{scope}")
        self._countdowns[scope] = task
        return True

    def stop_countdown(self, scope: str) -> bool:
        task = self._countdowns.pop(scope, None)
        if task is None:
            return False
        if not task.done():
            task.cancel()
        return True

    def has_countdown(self, scope: str) -> bool:
        task = self._countdowns.get(scope)
        return task is not None and not task.done()

    async def _run_countdown(self, scope: str, read_deadline: DeadlineReader) -> None:
        last_text: Optional[str] = None
        try:
            while True:
                await asyncio.sleep(self._period)

                deadline = read_deadline()
                if deadline is None:
                    return

                remaining = deadline - self._clock()
                if remaining <= timedelta(0):
                    return

                text = format_mmss(remaining)
                if text == last_text:
                    continue
                last_text = text

                if self._on_tick is None:
                    continue
                try:
                    await self._on_tick(scope, text)
                except Exception:
                    logger.warning("Countdown refresh failed for %s", scope, exc_info=True)
        finally:
            if self._countdowns.get(scope) is asyncio.current_task():
                del self._countdowns[scope]

    # ------------------------------------------------------------------

    def stop_all(self, scope: str) -> None:
        """Stop both timers of a scope."""

        self.cancel_expiry(scope)
        self.stop_countdown(scope)

    def shutdown(self) -> None:
        for scope in list(self._expiries):
            self.cancel_expiry(scope)
        for scope in list(self._countdowns):
            self.stop_countdown(scope)


__all__ = ["TimerController"]
