# Overview: Ledger store; per-(account, product) stock balances and their single mutation primitive.

from __future__ import annotations

import logging

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InsufficientStock, InvalidQuantity
from ..models import InventoryBalance
"""
Ledger Store Invariants (authoritative)

- quantity >= 0 for every (account, product) at all times.
- A missing row is quantity 0; the first credit creates the row.
- adjust() is the only write path. It is one conditional UPDATE
  (quantity = quantity + delta WHERE quantity + delta >= 0), so two
  concurrent adjustments of the same key serialize in the database and
  can never lose an update or overdraw the balance.
- adjust() never commits; callers (the transfer engine) own the transaction
  and the post-commit notifications.
"""

logger = logging.getLogger(__name__)


def get_balance(account_id: int, product_id: int) -> int:
    qty = (
        db.session.query(InventoryBalance.quantity)
        .filter_by(account_id=account_id, product_id=product_id)
        .scalar()
    )
    return int(qty or 0)


def list_balances(account_id: int, *, include_zero: bool = False) -> list[InventoryBalance]:
    q = db.session.query(InventoryBalance).filter_by(account_id=account_id)
    if not include_zero:
        q = q.filter(InventoryBalance.quantity > 0)
    return q.order_by(InventoryBalance.product_id).all()


def total_quantity(product_id: int) -> int:
    """Sum of one product's balances across every account."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryBalance.quantity), 0))
        .filter(InventoryBalance.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def account_has_stock(account_id: int) -> bool:
    return (
        db.session.query(InventoryBalance.id)
        .filter(InventoryBalance.account_id == account_id, InventoryBalance.quantity != 0)
        .first()
        is not None
    )


def _conditional_update(account_id: int, product_id: int, delta: int):
    stmt = (
        update(InventoryBalance)
        .where(
            InventoryBalance.account_id == account_id,
            InventoryBalance.product_id == product_id,
            InventoryBalance.quantity + delta >= 0,
        )
        .values(quantity=InventoryBalance.quantity + delta, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount


def adjust(account_id: int, product_id: int, delta: int) -> int:
    """
    Atomically apply delta to a balance and return the new quantity.

    Raises:
        InvalidQuantity: delta is 0 or not an integer
        InsufficientStock: delta < 0 and the balance cannot cover it
                           (the balance is left untouched)
    """
    if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
        raise InvalidQuantity("Adjustment must be a non-zero integer", details={"delta": delta})

    if _conditional_update(account_id, product_id, delta):
        return get_balance(account_id, product_id)

    if delta < 0:
        on_hand = get_balance(account_id, product_id)
        logger.warning(
            "Debit refused: account=%s product=%s on_hand=%s requested=%s",
            account_id, product_id, on_hand, -delta,
        )
        raise InsufficientStock(account_id, product_id, on_hand, -delta)

    # First credit for this key: create the row. Another writer may win the
    # race to insert; then the unique constraint fires and we update instead.
    try:
        with db.session.begin_nested():
            db.session.add(InventoryBalance(account_id=account_id, product_id=product_id, quantity=delta))
        return delta
    except IntegrityError:
        if not _conditional_update(account_id, product_id, delta):
            raise
        return get_balance(account_id, product_id)
