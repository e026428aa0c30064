"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services, and api modules.
"""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from config.catalog import catalog_from_mapping  # noqa: E402
from config.settings import ReservationPolicy, Settings  # noqa: E402
from domain.catalog import Catalog  # noqa: E402
from domain.order import PaymentMethod  # noqa: E402
from repositories.reservation_store import ReservationStore  # noqa: E402
from repositories.session_repository import SessionRepository  # noqa: E402
from repositories.stock_ledger import StockLedger  # noqa: E402
from services.reservation_engine import ReservationEngine  # noqa: E402

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingTimers:
    """Timer controller stand-in that records what the engine asked for."""

    def __init__(self) -> None:
        self.expiries: Dict[str, datetime] = {}
        self.scheduled: List[Tuple[str, datetime]] = []
        self.countdowns: Dict[str, Callable[[], Optional[datetime]]] = {}
        self.stopped: List[str] = []

    def schedule_expiry(self, scope: str, deadline: datetime) -> None:
        self.expiries[scope] = deadline
        self.scheduled.append((scope, deadline))

    def start_countdown(self, scope: str, read_deadline: Callable[[], Optional[datetime]]) -> bool:
        if scope in self.countdowns:
            return False
        self.countdowns[scope] = read_deadline
        return True

    def stop_all(self, scope: str) -> None:
        self.expiries.pop(scope, None)
        self.countdowns.pop(scope, None)
        self.stopped.append(scope)


TEST_CATALOG_DATA = {
    "relics": {
        "title": "Relics",
        "items": [
            {"id": "phoenix", "name": "Phoenix", "stock": 10, "price": 60, "discountPercent": 20, "popular": True},
            {"id": "last", "name": "Last One", "stock": 1, "price": 10, "discountPercent": 0},
            {"id": "gone", "name": "Sold Out", "stock": 0, "price": 5, "discountPercent": 0},
        ],
    },
    "charms": {
        "title": "Charms",
        "items": [
            {"id": "lotus", "name": "Lotus", "stock": 5, "price": 20, "discountPercent": 0},
        ],
    },
}


def make_policy(default_seconds: float = 300) -> ReservationPolicy:
    return ReservationPolicy(
        default_duration=timedelta(seconds=default_seconds),
        method_durations={
            PaymentMethod.PIX: timedelta(minutes=5),
            PaymentMethod.PAYPAL: timedelta(minutes=10),
            PaymentMethod.CRYPTO: timedelta(minutes=15),
        },
        extending_methods=frozenset({PaymentMethod.CRYPTO}),
    )


@pytest.fixture
def catalog() -> Catalog:
    return catalog_from_mapping(TEST_CATALOG_DATA)


@pytest.fixture
def catalog_file(tmp_path: Path) -> Path:
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(TEST_CATALOG_DATA), encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path: Path, catalog_file: Path) -> Settings:
    """Fast, cooldown-free settings backed by temporary files."""
    return Settings(
        reserve_default_seconds=300,
        cooldown_seconds=0,
        countdown_period_seconds=0.05,
        vouches_file=tmp_path / "vouches.json",
        catalog_file=catalog_file,
        rename_scope_on_paid=True,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timers() -> RecordingTimers:
    return RecordingTimers()


@pytest.fixture
def engine(catalog: Catalog, clock: FakeClock, timers: RecordingTimers) -> ReservationEngine:
    ledger = StockLedger()
    ledger.init_from_catalog(catalog)
    return ReservationEngine(
        catalog=catalog,
        ledger=ledger,
        store=ReservationStore(),
        sessions=SessionRepository(),
        timers=timers,
        policy=make_policy(),
        clock=clock,
    )
