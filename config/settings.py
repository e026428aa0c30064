"""
Runtime settings.

Values come from the environment, with a `.env` file in the project root
loaded first. Nothing here talks to external services; the Supabase
credentials are only read when the Supabase vouch backend is selected.

Environment variables (all optional):
- RESERVE_DEFAULT_SECONDS: reservation window before a method is chosen (600)
- RESERVE_PIX_SECONDS / RESERVE_PAYPAL_SECONDS / RESERVE_CRYPTO_SECONDS: nominal
  window per payment method (300 / 600 / 900)
- EXTENDING_METHODS: comma-separated methods allowed the one-time fairness
  extension (crypto)
- COOLDOWN_SECONDS: minimum delay between repeated buyer clicks (3)
- MAX_QUANTITY: ceiling for a single order quantity (999)
- COUNTDOWN_PERIOD_SECONDS: countdown refresh period (1)
- VOUCH_COMMENT_TIMEOUT_SECONDS / MAX_VOUCH_COMMENT_LEN: vouch comment window and
  length (120 / 250)
- VOUCH_STORAGE_BACKEND: json or supabase (json)
- VOUCHES_FILE / VOUCHES_TABLE: where vouches live (vouches.json / vouches)
- CATALOG_FILE: JSON catalog to load instead of the built-in one
- RENAME_SCOPE_ON_PAID: rename the shop scope once paid (true)
- PAYMENT_WEBHOOK_SECRET: shared secret for the payment confirmation webhook
- STAFF_API_TOKEN: token that grants the staff role on API calls
- LOG_LEVEL: root logging level (INFO)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import FrozenSet, Mapping, Optional

from dotenv import load_dotenv

from domain.order import PaymentMethod

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_str(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    raw = raw.strip()
    return raw or None


def _parse_methods(raw: str) -> FrozenSet[PaymentMethod]:
    methods = set()
    for part in raw.split(","):
        part = part.strip().lower()
        if not part:
            continue
        try:
            methods.add(PaymentMethod(part))
        except ValueError:
            raise RuntimeError(f"Unknown payment method in EXTENDING_METHODS: {part!r}")
    return frozenset(methods)


@dataclass(frozen=True, slots=True)
class ReservationPolicy:
    """
    Timing and quantity rules the reservation engine applies.

    default_duration applies from creation until a method is chosen. Only the
    methods in extending_methods may push the deadline out, once, to their
    nominal duration.
    """

    default_duration: timedelta
    method_durations: Mapping[PaymentMethod, timedelta]
    extending_methods: FrozenSet[PaymentMethod]
    max_quantity: int = 999

    def duration_for(self, method: PaymentMethod) -> timedelta:
        return self.method_durations.get(method, self.default_duration)


@dataclass(frozen=True, slots=True)
class Settings:
    reserve_default_seconds: float = 600
    reserve_method_seconds: Mapping[PaymentMethod, float] = field(
        default_factory=lambda: {
            PaymentMethod.PIX: 300,
            PaymentMethod.PAYPAL: 600,
            PaymentMethod.CRYPTO: 900,
        }
    )
    extending_methods: FrozenSet[PaymentMethod] = frozenset({PaymentMethod.CRYPTO})
    cooldown_seconds: float = 3
    max_quantity: int = 999
    countdown_period_seconds: float = 1
    vouch_comment_timeout_seconds: float = 120
    max_vouch_comment_len: int = 250
    vouch_storage_backend: str = "json"
    vouches_file: Path = Path("vouches.json")
    vouches_table: str = "vouches"
    catalog_file: Optional[Path] = None
    store_name: str = "Storefront"
    rename_scope_on_paid: bool = True
    payment_webhook_secret: Optional[str] = None
    staff_api_token: Optional[str] = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        backend = (os.getenv("VOUCH_STORAGE_BACKEND") or "json").strip().lower()
        if backend not in {"json", "supabase"}:
            raise RuntimeError(
                f"VOUCH_STORAGE_BACKEND must be 'json' or 'supabase', got {backend!r}"
            )

        catalog_file = _env_str("CATALOG_FILE")

        return cls(
            reserve_default_seconds=_env_float("RESERVE_DEFAULT_SECONDS", 600),
            reserve_method_seconds={
                PaymentMethod.PIX: _env_float("RESERVE_PIX_SECONDS", 300),
                PaymentMethod.PAYPAL: _env_float("RESERVE_PAYPAL_SECONDS", 600),
                PaymentMethod.CRYPTO: _env_float("RESERVE_CRYPTO_SECONDS", 900),
            },
            extending_methods=_parse_methods(os.getenv("EXTENDING_METHODS", "crypto")),
            cooldown_seconds=_env_float("COOLDOWN_SECONDS", 3),
            max_quantity=int(_env_float("MAX_QUANTITY", 999)),
            countdown_period_seconds=_env_float("COUNTDOWN_PERIOD_SECONDS", 1),
            vouch_comment_timeout_seconds=_env_float("VOUCH_COMMENT_TIMEOUT_SECONDS", 120),
            max_vouch_comment_len=int(_env_float("MAX_VOUCH_COMMENT_LEN", 250)),
            vouch_storage_backend=backend,
            vouches_file=Path(os.getenv("VOUCHES_FILE") or "vouches.json"),
            vouches_table=os.getenv("VOUCHES_TABLE") or "vouches",
            catalog_file=Path(catalog_file) if catalog_file else None,
            store_name=os.getenv("STORE_NAME") or "Storefront",
            rename_scope_on_paid=_env_bool("RENAME_SCOPE_ON_PAID", True),
            payment_webhook_secret=_env_str("PAYMENT_WEBHOOK_SECRET"),
            staff_api_token=_env_str("STAFF_API_TOKEN"),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        )

    def reservation_policy(self) -> ReservationPolicy:
        return ReservationPolicy(
            default_duration=timedelta(seconds=self.reserve_default_seconds),
            method_durations={
                method: timedelta(seconds=seconds)
                for method, seconds in self.reserve_method_seconds.items()
            },
            extending_methods=self.extending_methods,
            max_quantity=self.max_quantity,
        )


__all__ = ["ReservationPolicy", "Settings"]
