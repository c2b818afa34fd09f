from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import RequestStatus, enum_type


class TransferRequest(db.Model):
    """
    Purchase order / stock request from a downstream account to its upstream.

    LIFECYCLE:
    1. pending: created by the requester
    2. approved: fulfiller approved; stock moved fulfiller -> requester exactly once
    3. rejected: fulfiller declined with a reason; no ledger effect
    4. cancelled: requester withdrew it before a decision

    Terminal states never transition again. An approval that hits
    InsufficientStock leaves the request pending so it can be retried.
    """
    __tablename__ = "transfer_requests"
    __table_args__ = (
        db.Index("ix_transfer_requests_fulfiller_status", "fulfiller_account_id", "status"),
        db.Index("ix_transfer_requests_requester_status", "requester_account_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_number = db.Column(db.String(64), nullable=False, unique=True)

    requester_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    fulfiller_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Captured from the requester's tier price at request time
    unit_price_cents = db.Column(db.Integer, nullable=True)
    total_price_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(enum_type(RequestStatus, length=16), nullable=False, default=RequestStatus.PENDING, index=True)
    note = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)

    requested_at = db.Column(db.DateTime(timezone=True), nullable=False)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decided_by_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    requester = db.relationship("Account", foreign_keys=[requester_account_id])
    fulfiller = db.relationship("Account", foreign_keys=[fulfiller_account_id])
    product = db.relationship("Product")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<TransferRequest id={self.id} number={self.request_number!r} status={self.status.value}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_number": self.request_number,
            "requester_account_id": self.requester_account_id,
            "fulfiller_account_id": self.fulfiller_account_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "status": self.status.value,
            "note": self.note,
            "rejection_reason": self.rejection_reason,
            "requested_at": to_utc_z(self.requested_at),
            "decided_at": to_utc_z(self.decided_at) if self.decided_at else None,
            "decided_by_account_id": self.decided_by_account_id,
        }


class DocumentSequence(db.Model):
    """Per-prefix counters for human-readable document numbers (PO-000001, ORD-000001)."""
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_document_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
