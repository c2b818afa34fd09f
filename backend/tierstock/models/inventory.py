from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import MovementKind, enum_type


class InventoryBalance(db.Model):
    """
    Stock held by one account of one product.

    INVARIANTS:
    - quantity >= 0 (also enforced by a CHECK constraint)
    - Mutated only through ledger_service.adjust, which performs a single
      conditional UPDATE; never read-then-write from Python.
    - A missing row means quantity 0; the first credit creates it.
    """
    __tablename__ = "inventory_balances"
    __table_args__ = (
        db.UniqueConstraint("account_id", "product_id", name="uq_inventory_balances_account_product"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_balances_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only journal of ledger mutations made by the transfer engine.

    KINDS:
    - TRANSFER: from_account -> to_account (approved request)
    - SALE: from_account -> consumed (customer order)
    - RECEIVE: external -> to_account (HQ stock-in)
    - RESTOCK: returned order -> to_account

    Written in the same DB transaction (savepoint) as the balance change.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_to_kind_occurred", "to_account_id", "kind", "occurred_at"),
        db.Index("ix_stock_movements_from_occurred", "from_account_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    kind = db.Column(enum_type(MovementKind, length=16), nullable=False, index=True)

    from_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    to_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Resulting balances right after the movement
    from_balance_after = db.Column(db.Integer, nullable=True)
    to_balance_after = db.Column(db.Integer, nullable=True)

    transfer_request_id = db.Column(db.Integer, db.ForeignKey("transfer_requests.id"), nullable=True, index=True)
    customer_order_id = db.Column(db.Integer, db.ForeignKey("customer_orders.id"), nullable=True, index=True)

    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "from_account_id": self.from_account_id,
            "to_account_id": self.to_account_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "from_balance_after": self.from_balance_after,
            "to_balance_after": self.to_balance_after,
            "transfer_request_id": self.transfer_request_id,
            "customer_order_id": self.customer_order_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
