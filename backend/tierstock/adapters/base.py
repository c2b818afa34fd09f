# Overview: Adapter interfaces for the courier and point-of-sale systems, plus the records they exchange.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Protocol

WALK_IN_NAME = "Walk-In Customer"
WALK_IN_PHONE = "walk-in"


@dataclass(frozen=True)
class ShipmentBooking:
    tracking_number: str
    courier_order_id: str | None = None


@dataclass(frozen=True)
class ExternalCustomer:
    name: str | None = None
    phone: str | None = None
    address: str | None = None
    state: str | None = None
    postcode: str | None = None
    city: str | None = None


@dataclass(frozen=True)
class ExternalLineItem:
    """
    One sellable line of a POS transaction.

    line_index is the position in the source transaction's item list, so it
    stays stable across re-fetches even when non-item lines are dropped.
    """
    line_index: int
    product_name: str
    quantity: int
    total_cents: int
    sku: str | None = None
    unit_price_cents: int | None = None


@dataclass(frozen=True)
class ExternalTransaction:
    invoice_number: str
    lines: list[ExternalLineItem] = field(default_factory=list)
    cancelled: bool = False
    payment_label: str | None = None
    customer: ExternalCustomer | None = None
    transaction_time: datetime | None = None
    total_cents: int | None = None


class CourierAdapter(Protocol):
    def create_shipment(self, order) -> ShipmentBooking: ...

    def cancel_shipment(self, tracking_number: str) -> None: ...

    def get_waybill(self, tracking_numbers: list[str]) -> bytes: ...


class PosAdapter(Protocol):
    def fetch_transactions(self, day: date) -> list[ExternalTransaction]: ...
