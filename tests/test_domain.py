"""
Tests for the domain modules.

Covers contract rules:
- Countdown formatting truncates and never goes negative.
- Timestamps must be UTC.
- Catalog items validate stock, price and discount; groups reject duplicate ids.
- The default item is the popular one, else the first.
- Orders enforce quantity >= 1 and total == unit_price * quantity.
- The method lock is one-way; completed orders cannot be locked or completed again.
- Shop session quantities clamp to [1, max(1, remaining)].
- Vouch records accept ISO and epoch-millisecond timestamps.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from domain.actor import Actor, short_id
from domain.catalog import CatalogGroup, CatalogItem
from domain.order import Order, OrderState, PaymentMethod
from domain.shop_session import ShopSession, clamp
from domain.time import format_mmss, require_utc_timestamp, time_left
from domain.vouch import REF_ALPHABET, VouchRecord, random_ref, stars_line

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _order(**overrides) -> Order:
    values = dict(
        scope="relics-42",
        buyer_id="42",
        group_id="relics",
        item_id="phoenix",
        quantity=3,
        unit_price=48,
        total=144,
        reserved_until=T0 + timedelta(minutes=5),
        created_at=T0,
    )
    values.update(overrides)
    return Order(**values)


def test_format_mmss_truncates_and_clamps() -> None:
    assert format_mmss(timedelta(minutes=10)) == "10:00"
    assert format_mmss(timedelta(minutes=9, seconds=59, milliseconds=900)) == "09:59"
    assert format_mmss(timedelta(seconds=-5)) == "00:00"
    assert format_mmss(timedelta(minutes=125)) == "125:00"


def test_time_left_is_never_negative() -> None:
    assert time_left(T0 + timedelta(seconds=30), T0) == timedelta(seconds=30)
    assert time_left(T0 - timedelta(seconds=30), T0) == timedelta(0)
    assert time_left(None, T0) == timedelta(0)


def test_require_utc_timestamp() -> None:
    require_utc_timestamp("at", T0)

    with pytest.raises(ValueError):
        require_utc_timestamp("at", datetime(2025, 1, 1))
    with pytest.raises(ValueError):
        require_utc_timestamp("at", datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=-3))))


def test_catalog_item_validation() -> None:
    with pytest.raises(ValueError):
        CatalogItem(item_id="a", name="A", stock=-1, price=10)
    with pytest.raises(ValueError):
        CatalogItem(item_id="a", name="A", stock=1, price=10, discount_percent=101)
    with pytest.raises(ValueError):
        CatalogItem(item_id="", name="A", stock=1, price=10)


def test_catalog_group_default_item_and_duplicates() -> None:
    plain = CatalogItem(item_id="a", name="A", stock=1, price=10)
    popular = CatalogItem(item_id="b", name="B", stock=1, price=10, popular=True)

    assert CatalogGroup(group_id="g", title="G", items=(plain, popular)).default_item() == popular
    assert CatalogGroup(group_id="g", title="G", items=(plain,)).default_item() == plain
    assert CatalogGroup(group_id="g", title="G", items=()).default_item() is None

    with pytest.raises(ValueError):
        CatalogGroup(group_id="g", title="G", items=(plain, plain))


def test_order_validation() -> None:
    with pytest.raises(ValueError):
        _order(quantity=0, total=0)
    with pytest.raises(ValueError):
        _order(total=143)
    with pytest.raises(ValueError):
        _order(created_at=datetime(2025, 1, 1))


def test_order_lock_is_one_way() -> None:
    order = _order()
    assert order.state is OrderState.RESERVED_UNLOCKED

    order.lock(PaymentMethod.PIX)
    assert order.state is OrderState.RESERVED_LOCKED
    assert order.method is PaymentMethod.PIX

    with pytest.raises(ValueError):
        order.lock(PaymentMethod.CRYPTO)
    assert order.method is PaymentMethod.PIX


def test_completed_order_is_terminal() -> None:
    order = _order()
    order.complete(T0 + timedelta(minutes=1), "TX-1")

    assert order.state is OrderState.COMPLETED
    assert order.is_active is False
    assert order.transaction_ref == "TX-1"

    with pytest.raises(ValueError):
        order.complete(T0 + timedelta(minutes=2))
    with pytest.raises(ValueError):
        order.lock(PaymentMethod.PIX)
    with pytest.raises(ValueError):
        order.extend_until(T0 + timedelta(hours=1))


def test_payment_method_label() -> None:
    assert PaymentMethod.CRYPTO.label == "CRYPTO"
    assert PaymentMethod("pix") is PaymentMethod.PIX


def test_actor_can_manage() -> None:
    assert Actor("42").can_manage("42") is True
    assert Actor("43").can_manage("42") is False
    assert Actor("43", is_staff=True).can_manage("42") is True
    assert short_id("123456789") == "6789"


def test_shop_session_clamp_quantity() -> None:
    session = ShopSession(buyer_id="42", group_id="relics", item_id="phoenix", quantity=50)
    assert session.clamp_quantity(10) == 10

    session.quantity = -3
    assert session.clamp_quantity(10) == 1

    session.quantity = 4
    assert session.clamp_quantity(0) == 1
    assert clamp(7, 1, 5) == 5


def test_vouch_record_from_dict_accepts_iso_and_epoch_millis() -> None:
    iso = VouchRecord.from_dict({"stars": 5, "comment": "great", "at": "2025-01-01T12:00:00Z", "ref": "AB12"})
    millis = VouchRecord.from_dict({"stars": 4, "comment": "ok", "at": 1735732800000, "ref": "CD34"})

    assert iso.at == T0
    assert millis.at == T0
    assert VouchRecord.from_dict(iso.to_dict()) == iso


def test_vouch_record_rejects_bad_stars() -> None:
    with pytest.raises(ValueError):
        VouchRecord(stars=0, comment="x", at=T0, ref="AAAA")
    with pytest.raises(ValueError):
        VouchRecord(stars=6, comment="x", at=T0, ref="AAAA")


def test_random_ref_and_stars_line() -> None:
    ref = random_ref()
    assert len(ref) == 4
    assert all(ch in REF_ALPHABET for ch in ref)
    assert stars_line(3) == "***--"
