# backend/tierstock/services/import_service.py
"""
Reconciling importer: merges point-of-sale transactions into CustomerOrder.

RULES:
- Cancelled or returned transactions are skipped and counted, never written
- Each line is identified by (seller, invoice_number, line_index); an existing
  order with that key makes the line a duplicate (no update, no error)
- Lines whose product name is on the exclusion list (e.g. the COD fee line)
  are skipped and counted separately
- Surviving lines become Shipped orders on the POS platform

LEDGER: imported orders never touch InventoryBalance. The POS already tracked
its own stock when the sale happened; only manual orders consume local stock.

IDEMPOTENCE: the unique constraint on the line key backs the existence check.
Each line is inserted in its own savepoint, so a line inserted by a concurrent
import is rolled back alone and counted as a duplicate. Re-running an import
for the same window any number of times has the same net effect.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..adapters.base import WALK_IN_NAME, WALK_IN_PHONE, ExternalCustomer, ExternalLineItem, ExternalTransaction
from ..errors import NotFound, RequestError
from ..events import order_transitioned, queue_notification
from ..extensions import db, get_pos
from ..models import Account, Customer, CustomerOrder, DeliveryStatus, PaymentMethod, Platform, Product
from ..time_utils import local_date, utcnow
from .concurrency import begin_immediate, run_with_retry
from .document_service import next_document_number

logger = logging.getLogger(__name__)

_ONLINE_KEYWORDS = (
    "card", "credit", "debit", "transfer", "online", "ewallet",
    "grab", "touch", "boost", "shopee", "qr",
)
_COD_KEYWORDS = ("cod", "delivery")


@dataclass
class ImportSummary:
    imported: int = 0
    skipped_cancelled: int = 0
    skipped_duplicate: int = 0
    skipped_excluded: int = 0
    order_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "imported": self.imported,
            "skipped_cancelled": self.skipped_cancelled,
            "skipped_duplicate": self.skipped_duplicate,
            "skipped_excluded": self.skipped_excluded,
            "order_ids": list(self.order_ids),
        }


def map_payment_method(label: str | None) -> PaymentMethod:
    method = (label or "").lower()
    if any(word in method for word in _ONLINE_KEYWORDS):
        return PaymentMethod.ONLINE_TRANSFER
    if any(word in method for word in _COD_KEYWORDS):
        return PaymentMethod.COD
    return PaymentMethod.CASH


def strip_quantity_suffix(sku: str) -> str:
    """'ZP250-6' -> 'ZP250'; SKUs without a numeric suffix are returned as-is."""
    base, sep, tail = sku.rpartition("-")
    if sep and base and tail.isdigit() and int(tail) > 0:
        return base
    return sku


def match_product(line: ExternalLineItem, products: list[Product]) -> Product | None:
    """SKU first (exact, then without the quantity suffix), then name containment."""
    sku = (line.sku or "").strip()
    if " + " in sku:
        # Bundle SKUs map to several products; keep the raw line only
        return None
    if sku:
        by_sku = {p.sku: p for p in products}
        found = by_sku.get(sku) or by_sku.get(strip_quantity_suffix(sku))
        if found is not None:
            return found

    name = line.product_name.strip().lower()
    if not name:
        return None
    for product in products:
        local = product.name.lower()
        if local in name or name in local:
            return product
    return None


def _find_or_create_customer(seller_id: int, external: ExternalCustomer | None) -> Customer:
    name = (external.name if external else None) or WALK_IN_NAME
    phone = (external.phone if external else None) or WALK_IN_PHONE

    customer = db.session.query(Customer).filter_by(owner_account_id=seller_id, phone=phone).first()
    if customer is not None:
        return customer

    try:
        with db.session.begin_nested():
            customer = Customer(
                owner_account_id=seller_id,
                name=name,
                phone=phone,
                address=external.address if external else None,
                state=external.state if external else None,
                postcode=external.postcode if external else None,
                city=external.city if external else None,
            )
            db.session.add(customer)
        return customer
    except IntegrityError:
        return db.session.query(Customer).filter_by(owner_account_id=seller_id, phone=phone).one()


def _line_exists(seller_id: int, invoice_number: str, line_index: int) -> bool:
    return (
        db.session.query(CustomerOrder.id)
        .filter_by(
            seller_account_id=seller_id,
            source_invoice_number=invoice_number,
            source_line_index=line_index,
        )
        .first()
        is not None
    )


def _excluded_names(excluded_names: Iterable[str] | None) -> set[str]:
    if excluded_names is None:
        excluded_names = current_app.config.get("POS_EXCLUDED_PRODUCT_NAMES", ["COD"])
    return {name.strip().upper() for name in excluded_names if name and name.strip()}


def _order_date(tx: ExternalTransaction, sync_date: date | None) -> date:
    if sync_date is not None:
        return sync_date
    if tx.transaction_time is not None:
        return local_date(tx.transaction_time, current_app.config.get("POS_UTC_OFFSET_HOURS", 8))
    return utcnow().date()


def import_batch(
    seller_account_id: int,
    transactions: Iterable[ExternalTransaction],
    *,
    sync_date: date | None = None,
    excluded_names: Iterable[str] | None = None,
    platform: Platform = Platform.STOREHUB,
) -> ImportSummary:
    """
    Import POS transactions for one seller. Safe to re-run.

    Raises:
        NotFound: unknown seller account
    """
    if db.session.get(Account, seller_account_id) is None:
        raise NotFound(f"Account {seller_account_id} not found")
    transactions = list(transactions)
    excluded = _excluded_names(excluded_names)
    platform = Platform(platform)

    def _op():
        begin_immediate()
        summary = ImportSummary()
        products = db.session.query(Product).order_by(Product.id).all()

        for tx in transactions:
            if tx.cancelled:
                summary.skipped_cancelled += 1
                continue

            customer = None
            payment_method = map_payment_method(tx.payment_label)
            order_date = _order_date(tx, sync_date)

            for line in tx.lines:
                if line.product_name.strip().upper() in excluded:
                    summary.skipped_excluded += 1
                    continue
                if _line_exists(seller_account_id, tx.invoice_number, line.line_index):
                    summary.skipped_duplicate += 1
                    continue

                if customer is None:
                    customer = _find_or_create_customer(seller_account_id, tx.customer)
                product = match_product(line, products)
                quantity = line.quantity if line.quantity > 0 else 1
                unit_price = line.unit_price_cents if line.unit_price_cents is not None else line.total_cents // quantity

                try:
                    with db.session.begin_nested():
                        order = CustomerOrder(
                            order_number=next_document_number(document_type="CUSTOMER_ORDER", prefix="ORD"),
                            seller_account_id=seller_account_id,
                            customer_id=customer.id,
                            product_id=product.id if product is not None else None,
                            quantity=quantity,
                            unit_price_cents=unit_price,
                            total_price_cents=line.total_cents,
                            payment_method=payment_method,
                            delivery_status=DeliveryStatus.SHIPPED,
                            platform=platform,
                            date_order=order_date,
                            date_processed=order_date,
                            source_invoice_number=tx.invoice_number,
                            source_line_index=line.line_index,
                            source_product_name=line.product_name,
                            source_sku=line.sku,
                        )
                        db.session.add(order)
                except IntegrityError:
                    # A concurrent import inserted the same line first
                    summary.skipped_duplicate += 1
                    continue

                summary.imported += 1
                summary.order_ids.append(order.id)
                queue_notification(
                    db.session, order_transitioned,
                    order_id=order.id, action="imported", delivery_status=order.delivery_status,
                )

        db.session.commit()
        return summary

    try:
        summary = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "POS import for account %s: imported=%s cancelled=%s duplicate=%s excluded=%s",
        seller_account_id, summary.imported, summary.skipped_cancelled,
        summary.skipped_duplicate, summary.skipped_excluded,
    )
    return summary


def sync_from_pos(seller_account_id: int, day: date) -> ImportSummary:
    """
    Fetch one local day of POS transactions and import them.

    Raises:
        ExternalServiceUnavailable: the fetch failed; nothing is written
    """
    transactions = get_pos().fetch_transactions(day)
    return import_batch(seller_account_id, transactions, sync_date=day)


# --- JSON payloads (push imports) ------------------------------------------

def _require(mapping: dict, key: str, where: str):
    value = mapping.get(key)
    if value is None or value == "":
        raise RequestError(f"{where}: {key} is required")
    return value


def _as_int(value, where: str, key: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise RequestError(f"{where}: {key} must be an integer")
    if minimum is not None and value < minimum:
        raise RequestError(f"{where}: {key} must be at least {minimum}")
    return value


def _optional_int(mapping: dict, key: str, where: str, *, minimum: int | None = None) -> int | None:
    value = mapping.get(key)
    if value is None:
        return None
    return _as_int(value, where, key, minimum=minimum)


def _optional_text(mapping: dict, key: str, where: str) -> str | None:
    value = mapping.get(key)
    if value is None:
        return None
    if not isinstance(value, (str, int)) or isinstance(value, bool):
        raise RequestError(f"{where}: {key} must be a string")
    return str(value)


def _line_from_payload(raw_line, position: int, where: str) -> ExternalLineItem:
    line_where = f"{where}.lines[{position}]"
    if not isinstance(raw_line, dict):
        raise RequestError(f"{line_where} must be an object")
    return ExternalLineItem(
        line_index=_as_int(raw_line.get("line_index", position), line_where, "line_index", minimum=0),
        product_name=str(_require(raw_line, "product_name", line_where)),
        sku=_optional_text(raw_line, "sku", line_where),
        quantity=_as_int(raw_line.get("quantity", 1), line_where, "quantity", minimum=1),
        total_cents=_as_int(_require(raw_line, "total_cents", line_where), line_where, "total_cents", minimum=0),
        unit_price_cents=_optional_int(raw_line, "unit_price_cents", line_where, minimum=0),
    )


def transactions_from_payload(payload) -> list[ExternalTransaction]:
    """
    Build ExternalTransaction records from a pushed JSON batch.

    The whole batch is validated before anything is imported; the first bad
    field raises RequestError naming its position.
    """
    if not isinstance(payload, list):
        raise RequestError("transactions must be a list")

    result = []
    for tx_index, raw in enumerate(payload):
        where = f"transactions[{tx_index}]"
        if not isinstance(raw, dict):
            raise RequestError(f"{where} must be an object")
        invoice = str(_require(raw, "invoice_number", where))

        raw_lines = raw.get("lines") or []
        if not isinstance(raw_lines, list):
            raise RequestError(f"{where}: lines must be a list")
        lines = [_line_from_payload(raw_line, position, where) for position, raw_line in enumerate(raw_lines)]

        raw_customer = raw.get("customer")
        customer = None
        if raw_customer is not None:
            if not isinstance(raw_customer, dict):
                raise RequestError(f"{where}: customer must be an object")
            customer_where = f"{where}.customer"
            customer = ExternalCustomer(
                name=_optional_text(raw_customer, "name", customer_where),
                phone=_optional_text(raw_customer, "phone", customer_where),
                address=_optional_text(raw_customer, "address", customer_where),
                state=_optional_text(raw_customer, "state", customer_where),
                postcode=_optional_text(raw_customer, "postcode", customer_where),
                city=_optional_text(raw_customer, "city", customer_where),
            )

        result.append(
            ExternalTransaction(
                invoice_number=invoice,
                lines=lines,
                cancelled=bool(raw.get("cancelled", False)),
                payment_label=_optional_text(raw, "payment_method", where),
                customer=customer,
                total_cents=_optional_int(raw, "total_cents", where, minimum=0),
            )
        )
    return result
