# Overview: StoreHub-compatible point-of-sale client; fetches a day's transactions and normalizes them.

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any

import httpx

from ..errors import ExternalServiceUnavailable
from ..time_utils import local_date, parse_iso_datetime
from .base import WALK_IN_NAME, WALK_IN_PHONE, ExternalCustomer, ExternalLineItem, ExternalTransaction

logger = logging.getLogger(__name__)


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    return int(float(text))


def _to_cents(value: Any) -> int | None:
    """POS amounts are currency units (25.9), never cents."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(round(value * 100))
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    return int(round(float(text) * 100))


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _join(*parts) -> str | None:
    text = ", ".join(p for p in (_to_text(x) for x in parts) if p)
    return text or None


def _resolve_customer(raw: dict, directory: dict[str, dict]) -> ExternalCustomer | None:
    """
    Customer details in priority order: contact detail, delivery address,
    then the POS customer directory by refId. None means walk-in.
    """
    name = phone = address = state = postcode = city = None

    contact = raw.get("contactDetail") or {}
    if _to_text(contact.get("name")) not in (None, WALK_IN_NAME):
        name = _to_text(contact.get("name"))
    if _to_text(contact.get("phone")) not in (None, WALK_IN_PHONE):
        phone = _to_text(contact.get("phone"))

    deliveries = raw.get("deliveryInformation") or []
    if deliveries:
        addr = deliveries[0].get("address") or {}
        name = name or _to_text(addr.get("name"))
        phone = phone or _to_text(addr.get("phone"))
        if _to_text(addr.get("address")):
            address = _join(addr.get("address"), addr.get("city"), addr.get("postCode"))
        state = _to_text(addr.get("state"))
        postcode = _to_text(addr.get("postCode"))
        city = _to_text(addr.get("city"))

    ref_id = raw.get("customerRefId")
    if ref_id and name is None and ref_id in directory:
        found = directory[ref_id]
        parts = (_to_text(found.get("firstName")), _to_text(found.get("lastName")))
        name = " ".join(p for p in parts if p) or None
        phone = phone or _to_text(found.get("phone"))
        address = address or _join(found.get("address1"), found.get("address2"), found.get("city"))
        state = state or _to_text(found.get("state"))
        city = city or _to_text(found.get("city"))

    if name is None and phone is None:
        return None
    return ExternalCustomer(name=name, phone=phone, address=address, state=state, postcode=postcode, city=city)


def normalize_transaction(raw: dict, *, products: dict[str, dict], customers: dict[str, dict]) -> ExternalTransaction:
    lines = []
    for index, item in enumerate(raw.get("items") or []):
        if item.get("itemType") != "Item":
            continue
        catalog = products.get(item.get("productId")) or {}
        quantity = _to_int(item.get("quantity")) or 1
        total = _to_cents(item.get("total"))
        if total is None:
            total = _to_cents(item.get("subTotal")) or 0
        unit = _to_cents(item.get("unitPrice"))
        lines.append(
            ExternalLineItem(
                line_index=index,
                product_name=_to_text(catalog.get("name")) or _to_text(item.get("itemName"))
                or _to_text(item.get("name")) or "Unknown Product",
                sku=_to_text(catalog.get("sku")) or _to_text(item.get("sku")),
                quantity=quantity,
                total_cents=total,
                unit_price_cents=unit if unit is not None else total // quantity,
            )
        )

    payments = raw.get("payments") or []
    return ExternalTransaction(
        invoice_number=str(raw.get("invoiceNumber")),
        lines=lines,
        cancelled=bool(raw.get("isCancelled")) or raw.get("transactionType") == "Return",
        payment_label=_to_text(payments[0].get("paymentMethod")) if payments else None,
        customer=_resolve_customer(raw, customers),
        transaction_time=parse_iso_datetime(raw.get("transactionTime")),
        total_cents=_to_cents(raw.get("total")),
    )


class StoreHubPos:
    def __init__(
        self,
        *,
        base_url: str,
        username: str,
        password: str,
        timeout: float = 30.0,
        utc_offset_hours: int = 8,
        transport: httpx.BaseTransport | None = None,
    ):
        self.utc_offset_hours = utc_offset_hours
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(username, password),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @classmethod
    def from_config(cls, config, **kwargs) -> "StoreHubPos":
        return cls(
            base_url=config["POS_BASE_URL"],
            username=config["POS_USERNAME"],
            password=config["POS_PASSWORD"],
            timeout=config["POS_TIMEOUT_SECONDS"],
            utc_offset_hours=config["POS_UTC_OFFSET_HOURS"],
            **kwargs,
        )

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str, **params) -> Any:
        try:
            response = self._client.get(path, params=params or None)
        except httpx.TimeoutException as exc:
            logger.warning("POS GET %s timed out", path)
            raise ExternalServiceUnavailable("POS request timed out", details={"path": path}) from exc
        except httpx.HTTPError as exc:
            logger.warning("POS GET %s failed: %s", path, exc)
            raise ExternalServiceUnavailable(f"POS request failed: {exc}", details={"path": path}) from exc
        if not response.is_success:
            raise ExternalServiceUnavailable(
                f"POS returned {response.status_code} for {path}",
                details={"path": path, "status": response.status_code},
            )
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("POS GET %s returned a body that is not JSON", path)
            raise ExternalServiceUnavailable(
                f"POS returned an unreadable response for {path}", details={"path": path}
            ) from exc

    def _directory(self, path: str, key: str) -> dict[str, dict]:
        # Lookups only enrich the transactions; the sync still works without them
        try:
            rows = self._get(path)
        except ExternalServiceUnavailable as exc:
            logger.warning("POS %s lookup unavailable: %s", path, exc.message)
            return {}
        if not isinstance(rows, list):
            logger.warning("POS %s lookup returned %s, expected a list", path, type(rows).__name__)
            return {}
        return {row[key]: row for row in rows if isinstance(row, dict) and row.get(key)}

    def fetch_transactions(self, day: date) -> list[ExternalTransaction]:
        """
        Transactions whose local calendar date is `day`.

        The POS filters by UTC date, so the previous and current UTC days are
        fetched and narrowed to the local date here.
        """
        raw = self._get(
            "/transactions",
            **{"from": (day - timedelta(days=1)).isoformat(), "to": day.isoformat()},
        ) or []
        if not isinstance(raw, list):
            raise ExternalServiceUnavailable("POS returned transactions in an unexpected shape")
        products = self._directory("/products", "id")
        customers = self._directory("/customers", "refId")

        try:
            selected = []
            for row in raw:
                when = parse_iso_datetime(row.get("transactionTime"))
                if when is None or local_date(when, self.utc_offset_hours) != day:
                    continue
                selected.append((when, row))
            selected.sort(key=lambda pair: pair[0])
            transactions = [normalize_transaction(row, products=products, customers=customers) for _, row in selected]
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("POS transactions for %s could not be normalized: %s", day.isoformat(), exc)
            raise ExternalServiceUnavailable(
                "POS returned malformed transactions", details={"date": day.isoformat()}
            ) from exc

        logger.info("POS returned %s transactions, %s on %s", len(raw), len(selected), day.isoformat())
        return transactions
