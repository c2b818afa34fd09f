# backend/tierstock/services/transfer_service.py
"""
Transfer engine: the only code that moves stock.

WHY: Every balance change (approved request, customer sale, HQ stock-in,
return restock) goes through here so the debit, the credit and the journal
row share one transaction boundary and the invariants live in one place.

MOVES:
- transfer(from, to, ...)      internal move, conserves total stock
- transfer(from, None, ...)    consumption (sale to an external customer)
- receive_stock(to, ...)       external credit (HQ production stock-in)
- restock(to, ...)             credit back of a returned order
- stock_out(from, to, ...)     upstream push to a downstream tier, no request

ATOMICITY:
The debit, the credit and the StockMovement row run inside one savepoint.
If anything fails after the debit, the savepoint rolls back and neither side
is visible. Callers either let this module commit (commit=True) or fold the
move into their own unit of work (commit=False) and commit once.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..errors import InvalidQuantity, NotFound, RequestError, TierStockError
from ..events import balance_changed, queue_notification
from ..models import Account, AccountRole, MovementKind, Product, StockMovement
from ..time_utils import utcnow
from . import ledger_service
from .concurrency import begin_immediate, run_with_retry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransferResult:
    movement_id: int
    product_id: int
    quantity: int
    from_account_id: Optional[int]
    from_balance: Optional[int]
    to_account_id: Optional[int] = None
    to_balance: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "movement_id": self.movement_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "from_account_id": self.from_account_id,
            "from_balance": self.from_balance,
            "to_account_id": self.to_account_id,
            "to_balance": self.to_balance,
        }


def _validate_quantity(quantity) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity("Quantity must be a positive integer", details={"quantity": quantity})


def _require_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFound(f"Account {account_id} not found")
    return account


def _require_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


def _move(
    *,
    kind: MovementKind,
    from_account_id: int | None,
    to_account_id: int | None,
    product_id: int,
    quantity: int,
    transfer_request_id: int | None,
    customer_order_id: int | None,
    note: str | None,
    occurred_at: datetime | None,
) -> TransferResult:
    from_balance = to_balance = None
    try:
        with db.session.begin_nested():
            if from_account_id is not None:
                from_balance = ledger_service.adjust(from_account_id, product_id, -quantity)
            if to_account_id is not None:
                to_balance = ledger_service.adjust(to_account_id, product_id, quantity)

            movement = StockMovement(
                kind=kind,
                from_account_id=from_account_id,
                to_account_id=to_account_id,
                product_id=product_id,
                quantity=quantity,
                from_balance_after=from_balance,
                to_balance_after=to_balance,
                transfer_request_id=transfer_request_id,
                customer_order_id=customer_order_id,
                note=note,
                occurred_at=occurred_at or utcnow(),
            )
            db.session.add(movement)
    except TierStockError:
        raise
    except Exception:
        # Savepoint already rolled back: neither side of the move is visible.
        logger.exception(
            "Stock move rolled back after partial step: kind=%s from=%s to=%s product=%s qty=%s",
            kind.value, from_account_id, to_account_id, product_id, quantity,
        )
        raise

    if from_balance is not None:
        queue_notification(db.session, balance_changed,
                           account_id=from_account_id, product_id=product_id, quantity=from_balance)
    if to_balance is not None:
        queue_notification(db.session, balance_changed,
                           account_id=to_account_id, product_id=product_id, quantity=to_balance)

    return TransferResult(
        movement_id=movement.id,
        product_id=product_id,
        quantity=quantity,
        from_account_id=from_account_id,
        from_balance=from_balance,
        to_account_id=to_account_id,
        to_balance=to_balance,
    )


def _run(op, commit: bool):
    if not commit:
        begin_immediate()
        return op()

    def _op():
        begin_immediate()
        try:
            result = op()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


def transfer(
    from_account_id: int,
    to_account_id: int | None,
    product_id: int,
    quantity: int,
    *,
    transfer_request_id: int | None = None,
    customer_order_id: int | None = None,
    note: str | None = None,
    occurred_at: datetime | None = None,
    commit: bool = True,
) -> TransferResult:
    """
    Move quantity units of a product out of from_account.

    to_account_id=None consumes the stock (SALE); otherwise it is credited
    to to_account_id (TRANSFER).

    Raises:
        InvalidQuantity: quantity <= 0 or source == destination
        NotFound: unknown account/product
        InsufficientStock: source balance too low (nothing is credited)
    """
    _validate_quantity(quantity)
    if to_account_id is not None and to_account_id == from_account_id:
        raise InvalidQuantity("Source and destination accounts must differ")

    def _op():
        _require_account(from_account_id)
        if to_account_id is not None:
            _require_account(to_account_id)
        _require_product(product_id)
        return _move(
            kind=MovementKind.TRANSFER if to_account_id is not None else MovementKind.SALE,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            product_id=product_id,
            quantity=quantity,
            transfer_request_id=transfer_request_id,
            customer_order_id=customer_order_id,
            note=note,
            occurred_at=occurred_at,
        )

    return _run(_op, commit)


def receive_stock(
    to_account_id: int,
    product_id: int,
    quantity: int,
    *,
    note: str | None = None,
    occurred_at: datetime | None = None,
    commit: bool = True,
) -> TransferResult:
    """Credit stock entering the chain from outside (HQ production stock-in)."""
    _validate_quantity(quantity)

    def _op():
        _require_account(to_account_id)
        _require_product(product_id)
        result = _move(
            kind=MovementKind.RECEIVE,
            from_account_id=None,
            to_account_id=to_account_id,
            product_id=product_id,
            quantity=quantity,
            transfer_request_id=None,
            customer_order_id=None,
            note=note,
            occurred_at=occurred_at,
        )
        logger.info("Stock received: account=%s product=%s qty=%s", to_account_id, product_id, quantity)
        return result

    return _run(_op, commit)


def restock(
    to_account_id: int,
    product_id: int,
    quantity: int,
    *,
    customer_order_id: int,
    note: str | None = None,
    commit: bool = True,
) -> TransferResult:
    """Credit a returned order's quantity back to its seller."""
    _validate_quantity(quantity)

    def _op():
        _require_account(to_account_id)
        _require_product(product_id)
        return _move(
            kind=MovementKind.RESTOCK,
            from_account_id=None,
            to_account_id=to_account_id,
            product_id=product_id,
            quantity=quantity,
            transfer_request_id=None,
            customer_order_id=customer_order_id,
            note=note,
            occurred_at=None,
        )

    return _run(_op, commit)


# Which downstream roles an account may push stock to without a request
DIRECT_RECIPIENT_ROLES: dict[AccountRole, frozenset[AccountRole]] = {
    AccountRole.HQ: frozenset({AccountRole.MASTER_AGENT, AccountRole.BRANCH}),
    AccountRole.MASTER_AGENT: frozenset({AccountRole.AGENT}),
    AccountRole.BRANCH: frozenset({AccountRole.AGENT, AccountRole.MARKETER}),
    AccountRole.AGENT: frozenset(),
    AccountRole.MARKETER: frozenset(),
}


def stock_out(
    from_account_id: int,
    to_account_id: int,
    product_id: int,
    quantity: int,
    *,
    note: str | None = None,
) -> TransferResult:
    """
    Upstream-initiated transfer: the holder sends stock straight to a
    downstream account (e.g. Branch -> Agent) without a purchase request.

    Raises:
        InvalidQuantity: quantity <= 0 or source == destination
        NotFound: unknown account/product
        RequestError: inactive account/product, or the recipient is not a
                      downstream tier of the sender
        InsufficientStock: sender balance too low (nothing is credited)
    """
    _validate_quantity(quantity)
    if to_account_id == from_account_id:
        raise InvalidQuantity("Source and destination accounts must differ")

    def _op():
        sender = _require_account(from_account_id)
        recipient = _require_account(to_account_id)
        product = _require_product(product_id)
        if not sender.is_active or not recipient.is_active:
            raise RequestError("Both accounts must be active")
        if recipient.role not in DIRECT_RECIPIENT_ROLES[sender.role]:
            raise RequestError(
                f"A {sender.role.value} account cannot send stock to a {recipient.role.value} account",
                details={"sender_role": sender.role.value, "recipient_role": recipient.role.value},
            )
        if not product.is_active:
            raise RequestError(f"Product {product.sku} is inactive")

        result = _move(
            kind=MovementKind.TRANSFER,
            from_account_id=from_account_id,
            to_account_id=to_account_id,
            product_id=product_id,
            quantity=quantity,
            transfer_request_id=None,
            customer_order_id=None,
            note=note or "Direct stock-out",
            occurred_at=None,
        )
        logger.info(
            "Stock out: %s -> %s product=%s qty=%s",
            sender.code, recipient.code, product_id, quantity,
        )
        return result

    return _run(_op, commit=True)


def list_movements(
    account_id: int,
    *,
    product_id: int | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    """Movements into or out of an account, newest first."""
    q = db.session.query(StockMovement).filter(
        (StockMovement.from_account_id == account_id) | (StockMovement.to_account_id == account_id)
    )
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if since is not None:
        q = q.filter(StockMovement.occurred_at >= since)
    if until is not None:
        q = q.filter(StockMovement.occurred_at < until)
    return q.order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc()).limit(limit).all()
