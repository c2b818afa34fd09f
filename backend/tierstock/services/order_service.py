# backend/tierstock/services/order_service.py
"""
Order lifecycle state machine for customer-facing sales.

STATES (delivery_status):
- Pending: recorded, not yet handed to a courier
- Shipped: tracking number obtained (courier booking or manual entry)
- Return: parcel came back; date_return stamped

TRANSITIONS:
- create_order:        -> Pending, deducts the seller's stock (SALE movement)
- book_shipment:       Pending -> Shipped via the courier adapter
- assign_tracking:     Pending -> Shipped with a channel-supplied tracking number
- mark_returned:       Shipped -> Return, no stock effect
- revert_to_pending:   Shipped -> Pending, cancels the courier booking first
- mark_cod_collected:  stamps cod_collected_at on a Shipped COD order;
                       delivery_status is unchanged
- restock_return:      credits a returned manual order back to the seller, once

EXTERNAL CALLS:
The courier is called before any local write. If it fails or times out the
order is left exactly as it was and ExternalServiceUnavailable propagates.
Booking an order that already has a tracking number never calls the courier.
A booking that loses a race with another caller is cancelled after the local
transaction ends; a failed cancel is logged for manual follow-up.

BULK:
Every member runs the single-order operation in its own transaction. Failures
are collected in a BatchResult; successes are never rolled back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterable

from sqlalchemy.exc import SQLAlchemyError

from ..errors import (
    ExternalServiceUnavailable,
    InvalidQuantity,
    InvalidTransition,
    NotFound,
    PartialBatchFailure,
    RequestError,
    TierStockError,
)
from ..events import order_transitioned, queue_notification
from ..extensions import db, get_courier
from ..models import (
    Account,
    Customer,
    CustomerOrder,
    DeliveryStatus,
    PaymentMethod,
    Platform,
    PriceTier,
    Product,
)
from ..time_utils import utcnow
from . import transfer_service
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .document_service import next_document_number

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Per-member outcome of a bulk order operation."""
    succeeded: list = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def partial(self) -> bool:
        return bool(self.failed) and bool(self.succeeded)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
            "total": self.total,
        }

    def raise_for_failures(self) -> "BatchResult":
        if self.failed:
            raise PartialBatchFailure(self)
        return self


def _today() -> date:
    return utcnow().date()


def _locked_order(order_id: int) -> CustomerOrder:
    order = (
        lock_for_update(db.session.query(CustomerOrder).filter_by(id=order_id))
        .populate_existing()
        .first()
    )
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def _transitioned(order: CustomerOrder, action: str) -> None:
    queue_notification(
        db.session,
        order_transitioned,
        order_id=order.id,
        action=action,
        delivery_status=order.delivery_status,
    )


def _in_transaction(op):
    try:
        result = run_with_retry(op)
    except Exception:
        db.session.rollback()
        raise
    # No-op transitions return without committing; end their transaction too
    db.session.commit()
    return result


def get_order(order_id: int) -> CustomerOrder:
    order = db.session.get(CustomerOrder, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


def list_orders(
    *,
    seller_account_id: int | None = None,
    delivery_status: DeliveryStatus | None = None,
    platform: Platform | None = None,
    limit: int = 200,
) -> list[CustomerOrder]:
    q = db.session.query(CustomerOrder)
    if seller_account_id is not None:
        q = q.filter(CustomerOrder.seller_account_id == seller_account_id)
    if delivery_status is not None:
        q = q.filter(CustomerOrder.delivery_status == DeliveryStatus(delivery_status))
    if platform is not None:
        q = q.filter(CustomerOrder.platform == Platform(platform))
    return q.order_by(CustomerOrder.date_order.desc(), CustomerOrder.id.desc()).limit(limit).all()


def create_order(
    *,
    seller_account_id: int,
    product_id: int,
    quantity: int,
    payment_method: PaymentMethod,
    customer_id: int | None = None,
    platform: Platform = Platform.MANUAL,
    unit_price_cents: int | None = None,
    date_order: date | None = None,
    note: str | None = None,
) -> CustomerOrder:
    """
    Record a manual sale and consume the seller's stock in the same transaction.

    unit_price_cents defaults to the product's customer price.

    Raises:
        InvalidQuantity: quantity <= 0
        NotFound: unknown seller/product/customer
        RequestError: inactive seller/product, foreign customer, no price
        InsufficientStock: seller balance too low (no order row is created)
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity("Quantity must be a positive integer", details={"quantity": quantity})
    payment_method = PaymentMethod(payment_method)
    platform = Platform(platform)

    def _op():
        begin_immediate()
        seller = db.session.get(Account, seller_account_id)
        if seller is None:
            raise NotFound(f"Account {seller_account_id} not found")
        if not seller.is_active:
            raise RequestError(f"Account {seller.code} is inactive")

        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")
        if not product.is_active:
            raise RequestError(f"Product {product.sku} is inactive")

        if customer_id is not None:
            customer = db.session.get(Customer, customer_id)
            if customer is None:
                raise NotFound(f"Customer {customer_id} not found")
            if customer.owner_account_id != seller.id:
                raise RequestError("Customer belongs to another seller")

        price = unit_price_cents if unit_price_cents is not None else product.price_for(PriceTier.CUSTOMER)
        if price is None:
            raise RequestError(f"Product {product.sku} has no customer price; pass unit_price_cents")
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            raise RequestError("unit_price_cents must be a non-negative integer")

        order = CustomerOrder(
            order_number=next_document_number(document_type="CUSTOMER_ORDER", prefix="ORD"),
            seller_account_id=seller.id,
            customer_id=customer_id,
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=price,
            total_price_cents=price * quantity,
            payment_method=payment_method,
            delivery_status=DeliveryStatus.PENDING,
            platform=platform,
            date_order=date_order or _today(),
            note=note,
        )
        db.session.add(order)
        db.session.flush()

        transfer_service.transfer(
            seller.id,
            None,
            product.id,
            quantity,
            customer_order_id=order.id,
            note=f"Order {order.order_number}",
            commit=False,
        )
        _transitioned(order, "created")
        db.session.commit()
        logger.info("Order created: %s seller=%s product=%s qty=%s", order.order_number, seller.id, product.id, quantity)
        return order

    return _in_transaction(_op)


def _ship(order: CustomerOrder, tracking_number: str, *, courier_order_id: str | None, courier_booked: bool) -> None:
    order.tracking_number = tracking_number
    order.courier_order_id = courier_order_id
    order.courier_booked = courier_booked
    order.delivery_status = DeliveryStatus.SHIPPED
    order.date_processed = _today()
    _transitioned(order, "shipped")


def book_shipment(order_id: int) -> CustomerOrder:
    """
    Book the order with the courier and move it to Shipped.

    Idempotent: an order that already has a tracking number is returned
    unchanged without calling the courier.

    Raises:
        InvalidTransition: order is not Pending or has no customer to ship to
        ExternalServiceUnavailable: courier failed or timed out (order stays Pending)
    """
    order = get_order(order_id)
    if order.tracking_number:
        return order
    if order.delivery_status is not DeliveryStatus.PENDING:
        raise InvalidTransition(f"Order {order.order_number} is {order.delivery_status.value}, not Pending")
    if order.customer is None:
        raise InvalidTransition(f"Order {order.order_number} has no customer to ship to")

    courier = get_courier()
    try:
        booking = courier.create_shipment(order)
    except ExternalServiceUnavailable:
        db.session.rollback()
        logger.warning("Courier booking failed for order %s", order.order_number)
        raise

    def _op():
        begin_immediate()
        locked = _locked_order(order_id)
        if locked.tracking_number:
            # Another caller shipped it while we waited on the courier
            return locked, False
        _ship(locked, booking.tracking_number, courier_order_id=booking.courier_order_id, courier_booked=True)
        db.session.commit()
        logger.info("Order shipped: %s tracking=%s", locked.order_number, locked.tracking_number)
        return locked, True

    order, shipped = _in_transaction(_op)
    if not shipped and booking.tracking_number != order.tracking_number:
        _cancel_duplicate_booking(courier, order, booking.tracking_number)
    return order


def _cancel_duplicate_booking(courier, order: CustomerOrder, tracking_number: str) -> None:
    """Cancel a booking that lost the race; runs after the local transaction ended."""
    logger.warning(
        "Order %s already has tracking %s; cancelling duplicate booking %s",
        order.order_number, order.tracking_number, tracking_number,
    )
    try:
        courier.cancel_shipment(tracking_number)
    except ExternalServiceUnavailable:
        # The order is already shipped; the stray booking needs manual cancellation
        logger.exception(
            "Could not cancel duplicate courier booking %s for order %s; cancel it with the courier",
            tracking_number, order.order_number,
        )


def assign_tracking(order_id: int, tracking_number: str) -> CustomerOrder:
    """Ship a Pending order with a tracking number issued outside the courier adapter."""
    tracking_number = (tracking_number or "").strip()
    if not tracking_number:
        raise RequestError("tracking_number is required")

    def _op():
        begin_immediate()
        order = _locked_order(order_id)
        if order.tracking_number == tracking_number:
            return order
        if order.delivery_status is not DeliveryStatus.PENDING:
            raise InvalidTransition(f"Order {order.order_number} is {order.delivery_status.value}, not Pending")
        _ship(order, tracking_number, courier_order_id=None, courier_booked=False)
        db.session.commit()
        return order

    return _in_transaction(_op)


def mark_returned(order_id: int, *, return_date: date | None = None) -> CustomerOrder:
    """Shipped -> Return. Stock is not credited back; see restock_return."""
    def _op():
        begin_immediate()
        order = _locked_order(order_id)
        if order.delivery_status is DeliveryStatus.RETURN:
            return order
        if order.delivery_status is not DeliveryStatus.SHIPPED:
            raise InvalidTransition(f"Order {order.order_number} is {order.delivery_status.value}; only Shipped orders can be returned")
        order.delivery_status = DeliveryStatus.RETURN
        order.date_return = return_date or _today()
        _transitioned(order, "returned")
        db.session.commit()
        return order

    return _in_transaction(_op)


def mark_cod_collected(order_id: int, *, collected_at: datetime | None = None) -> CustomerOrder:
    """Stamp COD collection on a Shipped COD order. Repeat calls are no-ops."""
    def _op():
        begin_immediate()
        order = _locked_order(order_id)
        if order.payment_method is not PaymentMethod.COD:
            raise InvalidTransition(f"Order {order.order_number} is not a COD order")
        if order.cod_collected:
            return order
        if order.delivery_status is not DeliveryStatus.SHIPPED:
            raise InvalidTransition(f"Order {order.order_number} is {order.delivery_status.value}; COD is collected on Shipped orders")
        order.cod_collected_at = collected_at or utcnow()
        _transitioned(order, "cod_collected")
        db.session.commit()
        return order

    return _in_transaction(_op)


def revert_to_pending(order_id: int) -> CustomerOrder:
    """
    Shipped -> Pending, clearing tracking fields.

    A courier booking is cancelled first; the local change commits only after
    the courier confirms. Manually entered tracking numbers are just cleared.
    Reverting a Pending order is a no-op so a retry after a timeout is safe.

    Raises:
        InvalidTransition: order is returned or its COD was already collected
        ExternalServiceUnavailable: courier cancel failed (order stays Shipped)
    """
    order = get_order(order_id)
    if order.delivery_status is DeliveryStatus.PENDING:
        return order
    if order.delivery_status is not DeliveryStatus.SHIPPED:
        raise InvalidTransition(f"Order {order.order_number} is {order.delivery_status.value}; only Shipped orders can be reverted")
    if order.cod_collected:
        raise InvalidTransition(f"Order {order.order_number} has collected COD and cannot be reverted")

    tracking_number = order.tracking_number
    cancelled_remotely = bool(order.courier_booked and tracking_number)
    if cancelled_remotely:
        try:
            get_courier().cancel_shipment(tracking_number)
        except ExternalServiceUnavailable:
            db.session.rollback()
            logger.warning("Courier cancel failed for order %s tracking=%s", order.order_number, tracking_number)
            raise

    def _op():
        begin_immediate()
        locked = _locked_order(order_id)
        if locked.delivery_status is not DeliveryStatus.SHIPPED or locked.tracking_number != tracking_number:
            if cancelled_remotely:
                logger.error(
                    "Order %s changed after its courier booking %s was cancelled; "
                    "status=%s tracking=%s needs manual reconciliation",
                    locked.order_number, tracking_number,
                    locked.delivery_status.value, locked.tracking_number,
                )
            raise InvalidTransition(f"Order {locked.order_number} changed while its booking was being cancelled")
        locked.tracking_number = None
        locked.courier_order_id = None
        locked.courier_booked = False
        locked.date_processed = None
        locked.delivery_status = DeliveryStatus.PENDING
        _transitioned(locked, "reverted")
        db.session.commit()
        logger.info("Order reverted to Pending: %s (was %s)", locked.order_number, tracking_number)
        return locked

    return _in_transaction(_op)


def restock_return(order_id: int) -> CustomerOrder:
    """
    Credit a returned order's quantity back to the seller, at most once.

    Only manual orders qualify: imported orders never consumed local stock.
    """
    def _op():
        begin_immediate()
        order = _locked_order(order_id)
        if order.delivery_status is not DeliveryStatus.RETURN:
            raise InvalidTransition(f"Order {order.order_number} is {order.delivery_status.value}; only returned orders can be restocked")
        if order.is_imported or order.product_id is None:
            raise InvalidTransition(f"Order {order.order_number} did not consume local stock")
        if order.restocked_at is not None:
            raise InvalidTransition(f"Order {order.order_number} was already restocked")

        transfer_service.restock(
            order.seller_account_id,
            order.product_id,
            order.quantity,
            customer_order_id=order.id,
            note=f"Return of {order.order_number}",
            commit=False,
        )
        order.restocked_at = utcnow()
        _transitioned(order, "restocked")
        db.session.commit()
        logger.info("Returned order restocked: %s qty=%s", order.order_number, order.quantity)
        return order

    return _in_transaction(_op)


def get_waybill(order_ids: Iterable[int]) -> bytes:
    """Printable labels for the courier-booked orders among order_ids."""
    ids = list(dict.fromkeys(order_ids))
    if not ids:
        raise RequestError("order_ids is required")
    orders = db.session.query(CustomerOrder).filter(CustomerOrder.id.in_(ids)).all()
    tracking_numbers = [o.tracking_number for o in orders if o.courier_booked and o.tracking_number]
    if not tracking_numbers:
        raise InvalidTransition("None of the selected orders has a courier booking")
    return get_courier().get_waybill(tracking_numbers)


# --- Bulk operations -------------------------------------------------------

def _order_id_for_tracking(tracking_number: str) -> int:
    order_id = (
        db.session.query(CustomerOrder.id)
        .filter(CustomerOrder.tracking_number == tracking_number)
        .order_by(CustomerOrder.id.desc())
        .scalar()
    )
    if order_id is None:
        raise NotFound(f"No order with tracking number {tracking_number}")
    return order_id


def _tracking_key(value) -> str:
    if not isinstance(value, str):
        raise RequestError("Tracking numbers must be strings", details={"value": value})
    return value.strip()


def _order_key(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise RequestError("Order ids must be integers", details={"value": value})
    return value


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _run_batch(keys: Iterable, apply: Callable) -> BatchResult:
    """
    Apply one single-order operation per member. Keys are validated inside
    apply, so a malformed member is reported in `failed` like any other.
    """
    result = BatchResult()
    seen = []
    for key in keys:
        # list membership: members from JSON may be unhashable
        if key in seen:
            continue
        seen.append(key)
        try:
            apply(key)
        except TierStockError as exc:
            db.session.rollback()
            result.failed.append({"key": key, "error": exc.to_dict()})
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Bulk member %r failed", key)
            result.failed.append({"key": key, "error": {"error": str(exc), "code": type(exc).__name__}})
        else:
            result.succeeded.append(key)
    if result.failed:
        logger.warning("Bulk operation: %s of %s members failed", len(result.failed), result.total)
    return result


def bulk_mark_returned(tracking_numbers: Iterable, *, return_date: date | None = None) -> BatchResult:
    return _run_batch(
        (t for t in tracking_numbers if not _is_blank(t)),
        lambda t: mark_returned(_order_id_for_tracking(_tracking_key(t)), return_date=return_date),
    )


def bulk_mark_cod_collected(tracking_numbers: Iterable) -> BatchResult:
    return _run_batch(
        (t for t in tracking_numbers if not _is_blank(t)),
        lambda t: mark_cod_collected(_order_id_for_tracking(_tracking_key(t))),
    )


def bulk_book_shipments(order_ids: Iterable) -> BatchResult:
    return _run_batch(order_ids, lambda order_id: book_shipment(_order_key(order_id)))


def bulk_revert_to_pending(order_ids: Iterable) -> BatchResult:
    return _run_batch(order_ids, lambda order_id: revert_to_pending(_order_key(order_id)))
