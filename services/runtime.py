"""
Runtime wiring.

Builds the catalog, stock ledger, stores, timers, reservation engine, vouch flow
and event dispatcher from Settings, and binds the timer callbacks to the
dispatcher. The messaging and provisioning collaborators default to the
in-memory implementation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from config.catalog import load_catalog
from config.settings import Settings
from domain.time import utc_now
from repositories.memory_channels import InMemoryChannels
from repositories.reservation_store import ReservationStore
from repositories.session_repository import SessionRepository
from repositories.stock_ledger import StockLedger
from repositories.vouch_repository import VouchRepository, build_vouch_repository
from services.event_dispatcher import EventDispatcher
from services.reservation_engine import ReservationEngine
from services.timer_controller import TimerController
from services.vouch_flow import VouchFlow

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    channels: InMemoryChannels
    engine: ReservationEngine
    timers: TimerController
    vouch_flow: VouchFlow
    dispatcher: EventDispatcher

    async def start(self) -> None:
        await self.dispatcher.start()

    async def stop(self) -> None:
        self.timers.shutdown()
        await self.dispatcher.stop()


def build_runtime(
    settings: Settings,
    *,
    channels: Optional[InMemoryChannels] = None,
    vouch_repository: Optional[VouchRepository] = None,
    clock: Callable[[], datetime] = utc_now,
) -> Runtime:
    catalog = load_catalog(settings.catalog_file)
    ledger = StockLedger()
    ledger.init_from_catalog(catalog)

    store = ReservationStore()
    timers = TimerController(countdown_period=settings.countdown_period_seconds, clock=clock)
    engine = ReservationEngine(
        catalog=catalog,
        ledger=ledger,
        store=store,
        sessions=SessionRepository(),
        timers=timers,
        policy=settings.reservation_policy(),
        clock=clock,
    )

    if vouch_repository is None:
        vouch_repository = build_vouch_repository(
            settings.vouch_storage_backend,
            path=settings.vouches_file,
            table=settings.vouches_table,
        )
    vouch_flow = VouchFlow(
        store=store,
        repository=vouch_repository,
        comment_timeout=timedelta(seconds=settings.vouch_comment_timeout_seconds),
        max_comment_length=settings.max_vouch_comment_len,
        clock=clock,
    )

    channels = channels or InMemoryChannels()
    dispatcher = EventDispatcher(
        engine=engine,
        vouch_flow=vouch_flow,
        messenger=channels,
        provisioner=channels,
        cooldown=timedelta(seconds=settings.cooldown_seconds),
        rename_on_paid=settings.rename_scope_on_paid,
    )
    timers.bind(on_expire=dispatcher.post_expiry, on_tick=dispatcher.refresh_countdown)

    logger.info(
        "Runtime ready: %d catalog groups, vouches via %s",
        len(catalog.groups), settings.vouch_storage_backend,
    )
    return Runtime(
        settings=settings,
        channels=channels,
        engine=engine,
        timers=timers,
        vouch_flow=vouch_flow,
        dispatcher=dispatcher,
    )


__all__ = ["Runtime", "build_runtime"]
