"""
Tests for `services/event_dispatcher.py` wired through `services/runtime.py`.

Covers contract rules:
- Two buyers racing for the last unit: exactly one reservation succeeds.
- An elapsed reservation is released once, with exactly one expiry notice.
- A reservation locked on PIX keeps its deadline and still expires once.
- Every completed purchase in a scope gets its own vouch prompt.
- Selection events act on the shop the scope sells, never on another shop or the lobby.
- Repeated payment confirmations produce one notice and one vouch prompt.
- Only the owner (or staff) can act in a scope; mark-paid is staff only.
- Cooldown entries are dropped once their window has passed.
- Failed external calls never undo a state change.
- Unexpected failures are answered with a generic notice and the loop keeps running.
- The vouch comment window times out on its own.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from typing import List, Optional

from domain.actor import Actor
from domain.errors import ErrorCode
from domain.order import PaymentMethod
from repositories.memory_channels import InMemoryChannels
from services.event_dispatcher import GENERIC_FAILURE
from services.events import (
    AdjustQuantity,
    CancelOrder,
    ConfirmSelection,
    MarkPaid,
    OpenLobby,
    OpenShop,
    PaymentConfirmed,
    SelectItem,
    SelectMethod,
    SubmitVouchComment,
    SubmitVouchStars,
)
from services.runtime import Runtime, build_runtime

BUYER = Actor("1001")
OTHER = Actor("2002")
STAFF = Actor("9009", is_staff=True)


class FlakyChannels(InMemoryChannels):
    """Channels whose message sends can be made to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_sends = False

    async def send(self, scope: str, content: str) -> Optional[str]:
        if self.fail_sends:
            raise ConnectionError("chat service unavailable")
        return await super().send(scope, content)


def _contents(runtime: Runtime, scope: str) -> List[str]:
    return [message.content for message in runtime.channels.messages(scope)]


async def _open_and_reserve(runtime: Runtime, actor: Actor = BUYER, item_id: str = "phoenix") -> str:
    dispatcher = runtime.dispatcher
    scope = (await dispatcher.submit(OpenShop(actor=actor, group_id="relics"))).scope
    if item_id != "phoenix":
        await dispatcher.submit(SelectItem(scope=scope, actor=actor, item_id=item_id))
    reply = await dispatcher.submit(ConfirmSelection(scope=scope, actor=actor))
    assert reply.ok, reply.message
    return scope


def test_last_unit_race_has_one_winner(settings) -> None:
    runtime = build_runtime(settings)

    async def scenario():
        await runtime.start()
        d = runtime.dispatcher
        scope_a = (await d.submit(OpenShop(actor=BUYER, group_id="relics"))).scope
        scope_b = (await d.submit(OpenShop(actor=OTHER, group_id="relics"))).scope
        await d.submit(SelectItem(scope=scope_a, actor=BUYER, item_id="last"))
        await d.submit(SelectItem(scope=scope_b, actor=OTHER, item_id="last"))

        replies = await asyncio.gather(
            d.submit(ConfirmSelection(scope=scope_a, actor=BUYER)),
            d.submit(ConfirmSelection(scope=scope_b, actor=OTHER)),
        )
        await runtime.stop()
        return replies

    replies = asyncio.run(scenario())

    assert sorted(reply.ok for reply in replies) == [False, True]
    loser = next(reply for reply in replies if not reply.ok)
    assert loser.code == ErrorCode.INSUFFICIENT_STOCK.value
    assert runtime.engine.ledger.get_remaining("relics", "last") == 0


def test_reservation_expires_once_with_one_notice(settings) -> None:
    runtime = build_runtime(replace(settings, reserve_default_seconds=0.2))

    async def scenario() -> str:
        await runtime.start()
        scope = await _open_and_reserve(runtime)
        assert runtime.engine.ledger.get_remaining("relics", "phoenix") == 9

        await asyncio.sleep(0.6)
        await runtime.stop()
        return scope

    scope = asyncio.run(scenario())

    assert runtime.engine.get_order(scope) is None
    assert runtime.engine.ledger.get_remaining("relics", "phoenix") == 10
    expired = [c for c in _contents(runtime, scope) if c.startswith("**Reservation expired**")]
    assert len(expired) == 1


def test_double_payment_confirmation_prompts_once(settings) -> None:
    runtime = build_runtime(settings)

    async def scenario():
        await runtime.start()
        scope = await _open_and_reserve(runtime)
        first = await runtime.dispatcher.submit(PaymentConfirmed(scope=scope, transaction_ref="TX-1"))
        second = await runtime.dispatcher.submit(PaymentConfirmed(scope=scope, transaction_ref="TX-2"))
        await runtime.stop()
        return scope, first, second

    scope, first, second = asyncio.run(scenario())

    assert first.ok and first.payload["completed"] is True
    assert second.ok and second.payload["completed"] is False

    contents = _contents(runtime, scope)
    assert sum(c.startswith("**Payment Confirmed**") for c in contents) == 1
    assert sum(c.startswith("**Rate your experience") for c in contents) == 1
    assert "TX: **TX-1**" in next(c for c in contents if c.startswith("**Payment Confirmed**"))

    record = runtime.channels.get_scope(scope)
    assert record.staff_visible is True
    assert record.name == "paid-1001"
    assert runtime.engine.ledger.get_remaining("relics", "phoenix") == 9


def test_cancel_returns_stock_and_second_cancel_is_rejected(settings) -> None:
    runtime = build_runtime(settings)

    async def scenario():
        await runtime.start()
        scope = await _open_and_reserve(runtime)
        first = await runtime.dispatcher.submit(CancelOrder(scope=scope, actor=BUYER))
        second = await runtime.dispatcher.submit(CancelOrder(scope=scope, actor=BUYER))
        await runtime.stop()
        return scope, first, second

    scope, first, second = asyncio.run(scenario())

    assert first.ok
    assert second.ok is False
    assert second.code == ErrorCode.NO_ACTIVE_ORDER.value
    assert runtime.engine.ledger.get_remaining("relics", "phoenix") == 10
    assert sum(c.startswith("**Order canceled**") for c in _contents(runtime, scope)) == 1


def test_access_checks(settings) -> None:
    runtime = build_runtime(settings)

    async def scenario():
        await runtime.start()
        d = runtime.dispatcher
        scope = await _open_and_reserve(runtime)

        intruder = await d.submit(CancelOrder(scope=scope, actor=OTHER))
        unknown = await d.submit(ConfirmSelection(scope="nowhere", actor=BUYER))
        buyer_mark = await d.submit(MarkPaid(scope=scope, actor=BUYER))
        staff_method = await d.submit(SelectMethod(scope=scope, actor=STAFF, method=PaymentMethod.PIX))
        staff_mark = await d.submit(MarkPaid(scope=scope, actor=STAFF))
        await runtime.stop()
        return intruder, unknown, buyer_mark, staff_method, staff_mark

    intruder, unknown, buyer_mark, staff_method, staff_mark = asyncio.run(scenario())

    assert intruder.code == ErrorCode.NOT_OWNER.value
    assert unknown.code == ErrorCode.SCOPE_NOT_FOUND.value
    assert buyer_mark.code == ErrorCode.STAFF_ONLY.value
    assert staff_method.ok
    assert staff_mark.ok
    assert staff_mark.order.transaction_ref == "MANUAL_STAFF_CONFIRM"


def test_cooldown_rejects_rapid_clicks(settings) -> None:
    runtime = build_runtime(replace(settings, cooldown_seconds=3))

    async def scenario():
        await runtime.start()
        d = runtime.dispatcher
        scope = (await d.submit(OpenShop(actor=BUYER, group_id="relics"))).scope
        replies = [await d.submit(AdjustQuantity(scope=scope, actor=BUYER, delta=1)) for _ in range(2)]
        await runtime.stop()
        return replies

    # OpenShop itself consumed the cooldown window.
    first, second = asyncio.run(scenario())
    assert first.code == ErrorCode.COOLDOWN.value
    assert second.code == ErrorCode.COOLDOWN.value


def test_failed_message_send_keeps_reservation(settings) -> None:
    channels = FlakyChannels()
    runtime = build_runtime(settings, channels=channels)

    async def scenario():
        await runtime.start()
        d = runtime.dispatcher
        scope = (await d.submit(OpenShop(actor=BUYER, group_id="relics"))).scope
        channels.fail_sends = True
        reply = await d.submit(ConfirmSelection(scope=scope, actor=BUYER))
        await runtime.stop()
        return scope, reply

    scope, reply = asyncio.run(scenario())

    assert reply.ok
    order = runtime.engine.get_order(scope)
    assert order is not None and order.is_active
    assert order.order_message_id is None
    assert runtime.engine.ledger.get_remaining("relics", "phoenix") == 9


def test_unexpected_failure_gets_generic_reply(settings, monkeypatch) -> None:
    runtime = build_runtime(settings)

    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    async def scenario():
        await runtime.start()
        scope = await _open_and_reserve(runtime)
        monkeypatch.setattr(runtime.engine, "cancel", explode)
        failed = await runtime.dispatcher.submit(CancelOrder(scope=scope, actor=BUYER))
        after = await runtime.dispatcher.submit(OpenLobby(actor=BUYER))
        await runtime.stop()
        return failed, after

    failed, after = asyncio.run(scenario())

    assert failed.ok is False
    assert failed.code == "INTERNAL"
    assert failed.message == GENERIC_FAILURE
    assert after.ok


def test_refresh_countdown_edits_order_message(settings) -> None:
    runtime = build_runtime(settings)

    async def scenario() -> str:
        await runtime.start()
        scope = await _open_and_reserve(runtime)
        runtime.timers.stop_countdown(scope)
        await runtime.dispatcher.refresh_countdown(scope, "01:23")
        await runtime.dispatcher.refresh_countdown(scope, "01:23")
        await runtime.stop()
        return scope

    scope = asyncio.run(scenario())

    order_message = next(
        m for m in runtime.channels.messages(scope) if m.content.startswith("**Order Confirmed")
    )
    assert "Reservation expires in **01:23**" in order_message.content
    assert order_message.edits == 1


def test_vouch_saved_after_payment(settings) -> None:
    runtime = build_runtime(settings)

    async def scenario():
        await runtime.start()
        d = runtime.dispatcher
        scope = await _open_and_reserve(runtime)

        early = await d.submit(SubmitVouchStars(scope=scope, actor=BUYER, stars=5))
        await d.submit(PaymentConfirmed(scope=scope))
        stranger = await d.submit(SubmitVouchStars(scope=scope, actor=OTHER, stars=5))
        stars = await d.submit(SubmitVouchStars(scope=scope, actor=BUYER, stars=4))
        saved = await d.submit(SubmitVouchComment(scope=scope, actor=BUYER, text="  fast and friendly  "))
        await runtime.stop()
        return early, stranger, stars, saved

    early, stranger, stars, saved = asyncio.run(scenario())

    assert early.code == ErrorCode.VOUCH_NOT_ALLOWED.value
    assert stranger.code == ErrorCode.NOT_OWNER.value
    assert stars.ok
    assert saved.payload["outcome"] == "saved"

    stored = json.loads(settings.vouches_file.read_text(encoding="utf-8"))
    assert len(stored) == 1
    assert stored[0]["stars"] == 4
    assert stored[0]["comment"] == "fast and friendly"
    assert set(stored[0]) == {"stars", "comment", "at", "ref"}


def test_vouch_comment_window_times_out(settings) -> None:
    runtime = build_runtime(replace(settings, vouch_comment_timeout_seconds=0.1))

    async def scenario():
        await runtime.start()
        d = runtime.dispatcher
        scope = await _open_and_reserve(runtime)
        await d.submit(PaymentConfirmed(scope=scope))
        await d.submit(SubmitVouchStars(scope=scope, actor=BUYER, stars=3))

        await asyncio.sleep(0.9)
        late = await d.submit(SubmitVouchComment(scope=scope, actor=BUYER, text="too late"))
        await runtime.stop()
        return scope, late

    scope, late = asyncio.run(scenario())

    assert runtime.vouch_flow.get_pending(scope, BUYER.user_id) is None
    assert late.code == ErrorCode.NO_PENDING_VOUCH.value
    assert sum(c.startswith("Vouch timed out") for c in _contents(runtime, scope)) == 1
    assert not settings.vouches_file.exists()


def test_each_purchase_in_a_scope_gets_a_vouch_prompt(settings) -> None:
    runtime = build_runtime(settings)

    async def scenario() -> str:
        await runtime.start()
        scope = await _open_and_reserve(runtime)
        await runtime.dispatcher.submit(PaymentConfirmed(scope=scope, transaction_ref="TX-1"))
        again = await _open_and_reserve(runtime)
        await runtime.dispatcher.submit(PaymentConfirmed(scope=scope, transaction_ref="TX-2"))
        await runtime.stop()
        assert again == scope
        return scope

    scope = asyncio.run(scenario())

    contents = _contents(runtime, scope)
    assert sum(c.startswith("**Payment Confirmed**") for c in contents) == 2
    assert sum(c.startswith("**Rate your experience") for c in contents) == 2


def test_selection_follows_the_scope_shop(settings) -> None:
    runtime = build_runtime(settings)

    async def scenario():
        await runtime.start()
        d = runtime.dispatcher
        relics = (await d.submit(OpenShop(actor=BUYER, group_id="relics"))).scope
        await d.submit(OpenShop(actor=BUYER, group_id="charms"))
        lobby = (await d.submit(OpenLobby(actor=BUYER))).scope

        stale_confirm = await d.submit(ConfirmSelection(scope=relics, actor=BUYER))
        stale_item = await d.submit(SelectItem(scope=relics, actor=BUYER, item_id="lotus"))
        stale_adjust = await d.submit(AdjustQuantity(scope=relics, actor=BUYER, delta=1))
        in_lobby = await d.submit(ConfirmSelection(scope=lobby, actor=BUYER))

        await d.submit(OpenShop(actor=BUYER, group_id="relics"))
        fresh = await d.submit(ConfirmSelection(scope=relics, actor=BUYER))
        await runtime.stop()
        return relics, lobby, stale_confirm, stale_item, stale_adjust, in_lobby, fresh

    relics, lobby, stale_confirm, stale_item, stale_adjust, in_lobby, fresh = asyncio.run(scenario())

    for reply in (stale_confirm, stale_item, stale_adjust, in_lobby):
        assert reply.ok is False
        assert reply.code == ErrorCode.SESSION_NOT_FOUND.value

    assert runtime.engine.get_order(lobby) is None
    assert runtime.engine.ledger.get_remaining("charms", "lotus") == 5

    assert fresh.ok
    assert (fresh.order.group_id, fresh.order.item_id) == ("relics", "phoenix")
    assert runtime.engine.get_order(relics).group_id == "relics"


def test_reservation_locked_on_pix_expires_with_one_notice(settings) -> None:
    runtime = build_runtime(
        replace(
            settings,
            reserve_default_seconds=0.3,
            reserve_method_seconds={
                PaymentMethod.PIX: 300,
                PaymentMethod.PAYPAL: 600,
                PaymentMethod.CRYPTO: 900,
            },
        )
    )

    async def scenario():
        await runtime.start()
        scope = await _open_and_reserve(runtime)
        deadline = runtime.engine.get_order(scope).reserved_until

        locked = await runtime.dispatcher.submit(SelectMethod(scope=scope, actor=BUYER, method=PaymentMethod.PIX))
        after_lock = runtime.engine.get_order(scope).reserved_until

        await asyncio.sleep(0.8)
        await runtime.stop()
        return scope, deadline, locked, after_lock

    scope, deadline, locked, after_lock = asyncio.run(scenario())

    assert locked.ok
    assert locked.payload["extended"] is False
    assert after_lock == deadline

    assert runtime.engine.get_order(scope) is None
    assert runtime.engine.ledger.get_remaining("relics", "phoenix") == 10
    expired = [c for c in _contents(runtime, scope) if c.startswith("**Reservation expired**")]
    assert len(expired) == 1


def test_cooldown_entries_are_pruned(settings) -> None:
    runtime = build_runtime(replace(settings, cooldown_seconds=3))
    now = [100.0]
    runtime.dispatcher._monotonic = lambda: now[0]

    async def scenario():
        await runtime.start()
        d = runtime.dispatcher
        await d.submit(OpenShop(actor=BUYER, group_id="relics"))
        blocked = await d.submit(OpenShop(actor=BUYER, group_id="relics"))

        now[0] += 3
        other = await d.submit(OpenShop(actor=OTHER, group_id="relics"))
        tracked = set(d._last_action)
        again = await d.submit(OpenShop(actor=BUYER, group_id="relics"))
        await runtime.stop()
        return blocked, other, tracked, again

    blocked, other, tracked, again = asyncio.run(scenario())

    assert blocked.code == ErrorCode.COOLDOWN.value
    assert other.ok
    assert tracked == {OTHER.user_id}
    assert again.ok
