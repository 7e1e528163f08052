# Overview: Payment gateway capability (status lookup) and per-app gateway registry.

"""
Payment gateways are external collaborators. This module only defines the
status contract the finalizer relies on and a registry the host fills in:

    app = create_app()
    gateways.register_gateway(app, BillplzStatusClient(...))

Gateway calls block on network I/O and must never run inside a storage
transaction; the finalizer fetches status before it opens one.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import Flask, current_app

from ..extensions import db
from ..models import PaymentRecord
from ..time_utils import to_utc_z, utcnow
from .errors import PaymentProviderError


EXTENSION_KEY = "selfcheckout.gateways"

PROVIDER_BILLPLZ = "BILLPLZ"
PROVIDER_STRIPE = "STRIPE"
PROVIDER_SIMULATED = "SIMULATED"

VALID_PROVIDERS = [
    PROVIDER_BILLPLZ,
    PROVIDER_STRIPE,
    PROVIDER_SIMULATED,
]


@dataclass(frozen=True)
class GatewayStatus:
    """Provider-reported payment state, already normalized to minor units."""
    paid: bool
    amount_minor_units: int | None
    provider_state: str | None = None
    reference: str | None = None  # merchant reference echoed back (station id)
    paid_at: str | None = None
    checkout_url: str | None = None

    def to_dict(self) -> dict:
        return {
            "paid": self.paid,
            "amount_minor_units": self.amount_minor_units,
            "provider_state": self.provider_state,
            "reference": self.reference,
            "paid_at": self.paid_at,
            "checkout_url": self.checkout_url,
        }


class PaymentGateway:
    """One implementation per provider."""
    provider: str = ""

    def get_status(self, payment_ref: str) -> GatewayStatus:
        raise NotImplementedError


class SimulatedGateway(PaymentGateway):
    """
    Offline/demo gateway: a registered SIMULATED payment record counts as paid
    for its registered amount and station.
    """
    provider = PROVIDER_SIMULATED

    def get_status(self, payment_ref: str) -> GatewayStatus:
        record = db.session.query(PaymentRecord).filter_by(
            provider=self.provider,
            provider_ref=str(payment_ref),
        ).first()
        if record is None:
            return GatewayStatus(paid=False, amount_minor_units=None, provider_state="not_found")
        return GatewayStatus(
            paid=True,
            amount_minor_units=record.amount_cents,
            provider_state="paid",
            reference=record.station_id,
            paid_at=to_utc_z(record.paid_at or utcnow()),
        )


def normalize_provider(provider) -> str:
    value = str(provider or "").strip().upper()
    if value not in VALID_PROVIDERS:
        raise PaymentProviderError(
            f"Invalid payment provider: {provider}. Must be one of {VALID_PROVIDERS}",
            details={"provider": provider},
        )
    return value


def init_app(app: Flask) -> None:
    app.extensions[EXTENSION_KEY] = {}
    if app.config.get("SIMULATED_PAYMENTS_ENABLED"):
        register_gateway(app, SimulatedGateway())


def register_gateway(app: Flask, gateway: PaymentGateway, provider: str | None = None) -> None:
    key = normalize_provider(provider or gateway.provider)
    app.extensions.setdefault(EXTENSION_KEY, {})[key] = gateway


def get_gateway(provider: str) -> PaymentGateway:
    key = normalize_provider(provider)
    gateway = current_app.extensions.get(EXTENSION_KEY, {}).get(key)
    if gateway is None:
        raise PaymentProviderError(
            f"{key} is not configured.",
            details={"provider": key},
        )
    return gateway
