from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .enums import DeliveryStatus, PaymentMethod, Platform, enum_type


class CustomerOrder(db.Model):
    """
    Customer-facing sale recorded by a seller account.

    LIFECYCLE (delivery_status):
    Pending -> Shipped   tracking number obtained (courier booking or manual entry)
    Shipped -> Return    parcel came back; date_return stamped, no stock effect
    Shipped -> Pending   courier booking cancelled; tracking fields cleared

    COD collection is orthogonal: cod_collected_at is stamped on a Shipped COD
    order without changing delivery_status.

    STOCK: manual orders deduct the seller's balance at creation. Imported
    point-of-sale orders (source_invoice_number set) never touch the ledger.
    """
    __tablename__ = "customer_orders"
    __table_args__ = (
        db.UniqueConstraint(
            "seller_account_id", "source_invoice_number", "source_line_index",
            name="uq_customer_orders_seller_source_line",
        ),
        db.Index("ix_customer_orders_seller_status", "seller_account_id", "delivery_status"),
        db.Index("ix_customer_orders_tracking", "tracking_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    seller_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    # Nullable for imported lines that match no local product
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(enum_type(PaymentMethod, length=16), nullable=False)
    delivery_status = db.Column(enum_type(DeliveryStatus, length=16), nullable=False, default=DeliveryStatus.PENDING, index=True)
    platform = db.Column(enum_type(Platform, length=16), nullable=False, default=Platform.MANUAL)

    tracking_number = db.Column(db.String(64), nullable=True)
    courier_order_id = db.Column(db.String(128), nullable=True)
    # True when tracking_number came from the courier adapter (must be cancelled there)
    courier_booked = db.Column(db.Boolean, nullable=False, default=False)

    date_order = db.Column(db.Date, nullable=False)
    date_processed = db.Column(db.Date, nullable=True)
    date_return = db.Column(db.Date, nullable=True)
    cod_collected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    restocked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Point-of-sale provenance (dedup key is seller + invoice + line index)
    source_invoice_number = db.Column(db.String(64), nullable=True)
    source_line_index = db.Column(db.Integer, nullable=True)
    source_product_name = db.Column(db.String(255), nullable=True)
    source_sku = db.Column(db.String(128), nullable=True)

    note = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    seller = db.relationship("Account", foreign_keys=[seller_account_id])
    customer = db.relationship("Customer")
    product = db.relationship("Product")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_imported(self) -> bool:
        return self.source_invoice_number is not None

    @property
    def cod_collected(self) -> bool:
        return self.cod_collected_at is not None

    def __repr__(self) -> str:
        return f"<CustomerOrder id={self.id} number={self.order_number!r} status={self.delivery_status.value}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "seller_account_id": self.seller_account_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "payment_method": self.payment_method.value,
            "delivery_status": self.delivery_status.value,
            "platform": self.platform.value,
            "tracking_number": self.tracking_number,
            "courier_order_id": self.courier_order_id,
            "courier_booked": self.courier_booked,
            "date_order": to_iso_date(self.date_order),
            "date_processed": to_iso_date(self.date_processed),
            "date_return": to_iso_date(self.date_return),
            "cod_collected_at": to_utc_z(self.cod_collected_at) if self.cod_collected_at else None,
            "restocked_at": to_utc_z(self.restocked_at) if self.restocked_at else None,
            "source_invoice_number": self.source_invoice_number,
            "source_line_index": self.source_line_index,
            "source_product_name": self.source_product_name,
            "source_sku": self.source_sku,
            "note": self.note,
        }
