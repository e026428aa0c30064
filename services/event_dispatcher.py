"""
Event dispatcher: the single-consumer event loop around the reservation engine.

Every buyer action, staff action, payment signal and timer firing is queued as
an event and processed to completion before the next one starts. Within one
event the engine mutation always happens first; messages and visibility
changes follow, best-effort: their failures are logged and never undo the
state change.

Domain errors become a non-ok Reply for the sender only. Anything unexpected is
logged and answered with a generic notice; the consumer keeps running.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from domain.actor import Actor, short_id
from domain.errors import (
    CooldownError,
    NotOwnerError,
    ReservationError,
    ScopeNotFoundError,
    SessionNotFoundError,
    StaffOnlyError,
)
from domain.order import Order
from domain.time import format_mmss
from services import notices
from services.events import (
    COOLDOWN_EVENTS,
    AdjustQuantity,
    BackToLobby,
    CancelOrder,
    ConfirmSelection,
    Event,
    ExpireReservation,
    MarkPaid,
    OpenLobby,
    OpenShop,
    PaymentConfirmed,
    Reply,
    RequestSupport,
    SelectItem,
    SelectMethod,
    SubmitVouchComment,
    SubmitVouchStars,
    VouchTimeout,
)
from services.ports import Messenger, Provisioner
from services.reservation_engine import ReservationEngine
from services.vouch_flow import VouchFlow, VouchOutcome

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Something went wrong."
MANUAL_CONFIRM_REF = "MANUAL_STAFF_CONFIRM"

_QueueItem = Tuple[Event, Optional["asyncio.Future[Reply]"]]


class EventDispatcher:

    def __init__(
        self,
        *,
        engine: ReservationEngine,
        vouch_flow: VouchFlow,
        messenger: Messenger,
        provisioner: Provisioner,
        cooldown: timedelta = timedelta(seconds=3),
        rename_on_paid: bool = True,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.vouch_flow = vouch_flow
        self.messenger = messenger
        self.provisioner = provisioner
        self._cooldown = cooldown.total_seconds()
        self._rename_on_paid = rename_on_paid
        self._monotonic = monotonic
        self._last_action: Dict[str, float] = {}
        self._queue: Optional[asyncio.Queue[_QueueItem]] = None
        self._worker: Optional[asyncio.Task] = None
        self._vouch_timers: Dict[Tuple[str, str], asyncio.TimerHandle] = {}
        self._handlers: Dict[type, Callable[[Any], Awaitable[Reply]]] = {
            OpenLobby: self._on_open_lobby,
            OpenShop: self._on_open_shop,
            BackToLobby: self._on_back_to_lobby,
            RequestSupport: self._on_request_support,
            SelectItem: self._on_select_item,
            AdjustQuantity: self._on_adjust_quantity,
            ConfirmSelection: self._on_confirm_selection,
            SelectMethod: self._on_select_method,
            CancelOrder: self._on_cancel,
            MarkPaid: self._on_mark_paid,
            PaymentConfirmed: self._on_payment_confirmed,
            ExpireReservation: self._on_expire,
            SubmitVouchStars: self._on_vouch_stars,
            SubmitVouchComment: self._on_vouch_comment,
            VouchTimeout: self._on_vouch_timeout,
        }

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._worker = asyncio.get_running_loop().create_task(self._run(), name="event-dispatcher")
        logger.info("Event dispatcher started")

    async def stop(self) -> None:
        for handle in self._vouch_timers.values():
            handle.cancel()
        self._vouch_timers.clear()

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._queue is not None:
            while not self._queue.empty():
                _, future = self._queue.get_nowait()
                if future is not None and not future.done():
                    future.cancel()
            self._queue = None
        logger.info("Event dispatcher stopped")

    async def submit(self, event: Event) -> Reply:
        """Queue an event and wait for its reply."""

        if self._queue is None:
            raise RuntimeError("Event dispatcher is not running")
        future: asyncio.Future[Reply] = asyncio.get_running_loop().create_future()
        await self._queue.put((event, future))
        return await future

    def post(self, event: Event) -> None:
        """Queue an event without waiting (timer callbacks)."""

        if self._queue is None:
            logger.warning("Dropping %s: dispatcher is not running", type(event).__name__)
            return
        self._queue.put_nowait((event, None))

    def post_expiry(self, scope: str) -> None:
        self.post(ExpireReservation(scope=scope))

    async def _run(self) -> None:
        assert self._queue is not None
        while True:
            event, future = await self._queue.get()
            try:
                reply = await self.handle(event)
            except asyncio.CancelledError:
                if future is not None and not future.done():
                    future.cancel()
                raise
            finally:
                self._queue.task_done()
            if future is not None and not future.done():
                future.set_result(reply)

    async def handle(self, event: Event) -> Reply:
        """Process one event; never raises for domain or unexpected failures."""

        try:
            self._check_cooldown(event)
            handler = self._handlers.get(type(event))
            if handler is None:
                raise TypeError(f"No handler for {type(event).__name__}")
            return await handler(event)
        except ReservationError as e:
            return Reply(ok=False, message=e.message, code=e.code.value, scope=getattr(event, "scope", None))
        except Exception:
            logger.exception("Unexpected failure while handling %s", type(event).__name__)
            return Reply(ok=False, message=GENERIC_FAILURE, code="INTERNAL", scope=getattr(event, "scope", None))

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _check_cooldown(self, event: Event) -> None:
        if self._cooldown <= 0 or not isinstance(event, COOLDOWN_EVENTS):
            return

        user_id = event.actor.user_id
        now = self._monotonic()
        for stale in [uid for uid, at in self._last_action.items() if now - at >= self._cooldown]:
            del self._last_action[stale]

        if user_id in self._last_action:
            raise CooldownError(self._cooldown)
        self._last_action[user_id] = now

    def _check_access(self, scope: str, actor: Actor) -> str:
        owner = self.provisioner.scope_owner(scope)
        if owner is None:
            raise ScopeNotFoundError(scope)
        if not actor.can_manage(owner):
            raise NotOwnerError()
        return owner

    def _check_shop(self, scope: str, actor: Actor) -> str:
        """Access check for selection events; returns the group the shop sells."""

        self._check_access(scope, actor)
        group_id = self.provisioner.scope_group(scope)
        if group_id is None:
            raise SessionNotFoundError(actor.user_id)
        return group_id

    async def _safe(self, awaitable: Awaitable[Any], what: str) -> Any:
        try:
            return await awaitable
        except Exception:
            logger.warning("%s failed", what, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    async def _on_open_lobby(self, event: OpenLobby) -> Reply:
        buyer_id = event.actor.user_id
        scope = await self.provisioner.find_lobby(buyer_id)
        if scope is None:
            scope = await self.provisioner.create_lobby(buyer_id)
            await self._safe(self.messenger.send(scope, notices.lobby_message()), f"lobby message in {scope}")
        else:
            await self._safe(self.provisioner.show_scope(scope, buyer_id), f"show {scope}")
        return Reply(ok=True, message="Start Here is ready.", scope=scope)

    async def _on_open_shop(self, event: OpenShop) -> Reply:
        buyer_id = event.actor.user_id
        session = self.engine.open_session(buyer_id, event.group_id)
        group = self.engine.catalog.get_group(event.group_id)
        assert group is not None

        scope = await self.provisioner.find_shop(buyer_id, group.group_id)
        if scope is None:
            scope = await self.provisioner.create_shop(buyer_id, group.group_id, group.title)
        else:
            await self._safe(self.provisioner.show_scope(scope, buyer_id), f"show {scope}")

        lobby = await self._safe(self.provisioner.find_lobby(buyer_id), f"find lobby of {buyer_id}")
        if lobby:
            await self._safe(self.provisioner.hide_scope(lobby, buyer_id), f"hide {lobby}")

        catalog_text = notices.catalog_message(group, self.engine.ledger, session)
        await self._safe(self.messenger.send(scope, catalog_text), f"catalog message in {scope}")
        return Reply(
            ok=True,
            message=f"Opened: {scope}",
            scope=scope,
            payload={"session": session, "catalog": catalog_text},
        )

    async def _on_back_to_lobby(self, event: BackToLobby) -> Reply:
        self._check_access(event.scope, event.actor)
        buyer_id = event.actor.user_id

        lobby = await self.provisioner.find_lobby(buyer_id)
        if lobby is None:
            return Reply(ok=False, message="Start Here not found.", code=ScopeNotFoundError(event.scope).code.value)

        await self._safe(self.provisioner.show_scope(lobby, buyer_id), f"show {lobby}")
        if event.scope != lobby:
            await self._safe(self.provisioner.hide_scope(event.scope, buyer_id), f"hide {event.scope}")
        await self._safe(self.messenger.send(lobby, "**Main Menu**"), f"menu message in {lobby}")
        return Reply(ok=True, message=f"Back: {lobby}", scope=lobby)

    async def _on_request_support(self, event: RequestSupport) -> Reply:
        self._check_access(event.scope, event.actor)
        await self._safe(self.provisioner.grant_staff(event.scope), f"grant staff on {event.scope}")
        await self._safe(
            self.messenger.send(event.scope, notices.support_requested_message()),
            f"support message in {event.scope}",
        )
        return Reply(ok=True, message="Support notified.", scope=event.scope)

    # ------------------------------------------------------------------
    # Selection and orders
    # ------------------------------------------------------------------

    def _selection_reply(self, scope: str, buyer_id: str) -> Reply:
        session = self.engine.get_session(buyer_id)
        assert session is not None
        group = self.engine.catalog.get_group(session.group_id)
        assert group is not None
        return Reply(
            ok=True,
            message="Selection updated.",
            scope=scope,
            payload={"session": session, "catalog": notices.catalog_message(group, self.engine.ledger, session)},
        )

    async def _on_select_item(self, event: SelectItem) -> Reply:
        group_id = self._check_shop(event.scope, event.actor)
        self.engine.select_item(event.scope, event.actor.user_id, event.item_id, group_id=group_id)
        return self._selection_reply(event.scope, event.actor.user_id)

    async def _on_adjust_quantity(self, event: AdjustQuantity) -> Reply:
        group_id = self._check_shop(event.scope, event.actor)
        self.engine.adjust_selection(
            event.scope,
            event.actor.user_id,
            delta=event.delta,
            quantity=event.quantity,
            group_id=group_id,
        )
        return self._selection_reply(event.scope, event.actor.user_id)

    async def _on_confirm_selection(self, event: ConfirmSelection) -> Reply:
        group_id = self._check_shop(event.scope, event.actor)
        order = self.engine.confirm_selection(event.scope, event.actor.user_id, group_id=group_id)

        group = self.engine.catalog.get_group(order.group_id)
        item = self.engine.catalog.get_item(order.group_id, order.item_id)
        assert group is not None and item is not None

        content = notices.order_message(order, group, item, format_mmss(self.engine.time_left(event.scope)))
        message_id = await self._safe(self.messenger.send(event.scope, content), f"order message in {event.scope}")
        if message_id:
            self.engine.attach_order_message(event.scope, str(message_id))

        return Reply(ok=True, message="Reserved successfully.", scope=event.scope, order=order)

    async def _on_select_method(self, event: SelectMethod) -> Reply:
        self._check_access(event.scope, event.actor)
        selection = self.engine.select_method(event.scope, event.actor, event.method)
        countdown = format_mmss(self.engine.time_left(event.scope))

        if not selection.changed:
            return Reply(
                ok=True,
                message=notices.method_already_selected(event.method, countdown),
                scope=event.scope,
                order=selection.order,
                payload={"extended": False},
            )

        await self._safe(
            self.messenger.send(event.scope, notices.method_locked_message(event.method, countdown)),
            f"method message in {event.scope}",
        )
        return Reply(
            ok=True,
            message=f"Method set to {event.method.label} (locked).",
            scope=event.scope,
            order=selection.order,
            payload={"extended": selection.extended},
        )

    async def _on_cancel(self, event: CancelOrder) -> Reply:
        self._check_access(event.scope, event.actor)
        released = self.engine.cancel(event.scope, event.actor)

        group = self.engine.catalog.get_group(released.group_id)
        item = self.engine.catalog.get_item(released.group_id, released.item_id)
        await self._safe(
            self.messenger.send(event.scope, notices.cancel_message(released, group, item)),
            f"cancel message in {event.scope}",
        )
        return Reply(ok=True, message="Order canceled.", scope=event.scope, payload={"released": released})

    async def _on_expire(self, event: ExpireReservation) -> Reply:
        released = self.engine.expire(event.scope)
        if released is None:
            return Reply(ok=True, message="Nothing to expire.", scope=event.scope)

        await self._safe(
            self.messenger.send(event.scope, notices.expiry_message()),
            f"expiry message in {event.scope}",
        )
        return Reply(ok=True, message="Reservation expired.", scope=event.scope, payload={"released": released})

    # ------------------------------------------------------------------
    # Payment confirmation
    # ------------------------------------------------------------------

    async def _on_mark_paid(self, event: MarkPaid) -> Reply:
        self._check_access(event.scope, event.actor)
        if not event.actor.is_staff:
            raise StaffOnlyError()

        order = await self._complete(event.scope, MANUAL_CONFIRM_REF)
        message = "Marked as paid." if order else "Nothing to confirm."
        return Reply(ok=True, message=message, scope=event.scope, order=order, payload={"completed": order is not None})

    async def _on_payment_confirmed(self, event: PaymentConfirmed) -> Reply:
        order = await self._complete(event.scope, event.transaction_ref)
        message = "Payment confirmed." if order else "Nothing to confirm."
        return Reply(ok=True, message=message, scope=event.scope, order=order, payload={"completed": order is not None})

    async def _complete(self, scope: str, transaction_ref: Optional[str]) -> Optional[Order]:
        order = self.engine.confirm_payment(scope, transaction_ref)
        if order is None:
            return None

        group = self.engine.catalog.get_group(order.group_id)
        item = self.engine.catalog.get_item(order.group_id, order.item_id)

        await self._safe(self.provisioner.grant_staff(scope), f"grant staff on {scope}")
        await self._safe(
            self.messenger.send(scope, notices.payment_confirmed_message(order, group, item)),
            f"payment message in {scope}",
        )
        if self._rename_on_paid:
            name = f"paid-{short_id(order.buyer_id).lower()}"
            await self._safe(self.provisioner.rename_scope(scope, name), f"rename {scope}")

        if self.vouch_flow.solicit(order):
            await self._safe(self.messenger.send(scope, notices.vouch_prompt()), f"vouch prompt in {scope}")
        return order

    # ------------------------------------------------------------------
    # Vouches
    # ------------------------------------------------------------------

    async def _on_vouch_stars(self, event: SubmitVouchStars) -> Reply:
        pending = self.vouch_flow.start(event.scope, event.actor.user_id, event.stars)

        timeout = self.vouch_flow.comment_timeout
        await self._safe(
            self.messenger.send(
                event.scope,
                notices.vouch_comment_request(
                    self.vouch_flow.max_comment_length,
                    int(timeout.total_seconds() // 60),
                ),
            ),
            f"vouch comment request in {event.scope}",
        )

        key = (event.scope, event.actor.user_id)
        previous = self._vouch_timers.pop(key, None)
        if previous is not None:
            previous.cancel()
        self._vouch_timers[key] = asyncio.get_running_loop().call_later(
            timeout.total_seconds() + 0.5,
            self._post_vouch_timeout,
            event.scope,
            event.actor.user_id,
        )

        return Reply(
            ok=True,
            message=f"You selected: **{pending.stars} stars**. Type your comment now.",
            scope=event.scope,
            payload={"pending": pending},
        )

    def _post_vouch_timeout(self, scope: str, buyer_id: str) -> None:
        self._vouch_timers.pop((scope, buyer_id), None)
        self.post(VouchTimeout(scope=scope, buyer_id=buyer_id))

    async def _on_vouch_comment(self, event: SubmitVouchComment) -> Reply:
        result = self.vouch_flow.submit_comment(event.scope, event.actor.user_id, event.text)

        handle = self._vouch_timers.pop((event.scope, event.actor.user_id), None)
        if handle is not None:
            handle.cancel()

        if result.outcome is VouchOutcome.SAVED and result.record is not None:
            text = notices.vouch_saved_message(result.record)
        elif result.outcome is VouchOutcome.TIMED_OUT:
            text = notices.vouch_timed_out_message()
        else:
            text = notices.vouch_cancelled_message()

        await self._safe(self.messenger.send(event.scope, text), f"vouch result in {event.scope}")
        return Reply(
            ok=True,
            message=text,
            scope=event.scope,
            payload={"outcome": result.outcome.value, "record": result.record},
        )

    async def _on_vouch_timeout(self, event: VouchTimeout) -> Reply:
        if not self.vouch_flow.expire_pending(event.scope, event.buyer_id):
            return Reply(ok=True, message="No vouch to time out.", scope=event.scope)

        await self._safe(
            self.messenger.send(event.scope, notices.vouch_timed_out_message()),
            f"vouch timeout message in {event.scope}",
        )
        return Reply(ok=True, message="Vouch timed out.", scope=event.scope)

    # ------------------------------------------------------------------
    # Countdown display
    # ------------------------------------------------------------------

    async def refresh_countdown(self, scope: str, text: str) -> None:
        """Rewrite the order message's countdown line when it changed."""

        order = self.engine.store.get_active(scope)
        if order is None or order.order_message_id is None:
            return

        content = await self.messenger.fetch(scope, order.order_message_id)
        if content is None:
            return

        updated = notices.refresh_countdown(content, text)
        if updated != content:
            await self.messenger.edit(scope, order.order_message_id, updated)


__all__ = ["EventDispatcher", "GENERIC_FAILURE", "MANUAL_CONFIRM_REF"]
