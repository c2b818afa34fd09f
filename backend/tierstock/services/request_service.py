# backend/tierstock/services/request_service.py
"""
Request/approval workflow for stock purchases between tiers.

LIFECYCLE:
1. pending: created by the requester (downstream account)
2. approved: fulfiller approved; transfer_service moves the stock
   fulfiller -> requester in the same transaction as the status change
3. rejected: fulfiller declined with a reason; no ledger effect
4. cancelled: requester withdrew the request before any decision

Approving a decided request raises AlreadyDecided and moves nothing. The
request row carries an optimistic version column, so two racing approvals of
the same request cannot both commit: the loser retries, sees the decision and
raises AlreadyDecided.

INSUFFICIENT STOCK: approval fails with InsufficientStock and the request
stays pending, so the fulfiller can approve again after restocking.
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..errors import AlreadyDecided, InvalidQuantity, NotFound, RequestError
from ..events import queue_notification, request_decided
from ..models import Account, AccountRole, Product, RequestStatus, TransferRequest
from ..time_utils import utcnow
from . import transfer_service
from .concurrency import begin_immediate, lock_for_update, run_with_retry
from .document_service import next_document_number

logger = logging.getLogger(__name__)


# Which upstream roles may fulfil a request from each downstream role
UPSTREAM_ROLES: dict[AccountRole, frozenset[AccountRole]] = {
    AccountRole.MASTER_AGENT: frozenset({AccountRole.HQ}),
    AccountRole.BRANCH: frozenset({AccountRole.HQ}),
    AccountRole.AGENT: frozenset({AccountRole.MASTER_AGENT}),
    AccountRole.MARKETER: frozenset({AccountRole.BRANCH}),
    AccountRole.HQ: frozenset(),
}


def _get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFound(f"Account {account_id} not found")
    return account


def _locked_request(request_id: int) -> TransferRequest:
    req = (
        lock_for_update(db.session.query(TransferRequest).filter_by(id=request_id))
        .populate_existing()
        .first()
    )
    if req is None:
        raise NotFound(f"Transfer request {request_id} not found")
    return req


def _ensure_pending(req: TransferRequest, action: str) -> None:
    if req.status is not RequestStatus.PENDING:
        raise AlreadyDecided(
            f"Cannot {action} request {req.request_number} in {req.status.value} status",
            details={"request_id": req.id, "status": req.status.value},
        )


def _decided(req: TransferRequest) -> None:
    queue_notification(db.session, request_decided, request_id=req.id, status=req.status)


def create_request(
    *,
    requester_account_id: int,
    fulfiller_account_id: int,
    product_id: int,
    quantity: int,
    note: str | None = None,
) -> TransferRequest:
    """
    Create a pending stock request (purchase order).

    Raises:
        InvalidQuantity: quantity <= 0
        NotFound: unknown account/product
        RequestError: inactive account/product or the fulfiller is not an
                      upstream tier of the requester
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity("Quantity must be a positive integer", details={"quantity": quantity})

    def _op():
        begin_immediate()
        requester = _get_account(requester_account_id)
        fulfiller = _get_account(fulfiller_account_id)
        if not requester.is_active or not fulfiller.is_active:
            raise RequestError("Both accounts must be active")
        if fulfiller.role not in UPSTREAM_ROLES[requester.role]:
            raise RequestError(
                f"A {requester.role.value} account cannot request stock from a {fulfiller.role.value} account",
                details={"requester_role": requester.role.value, "fulfiller_role": fulfiller.role.value},
            )

        product = db.session.get(Product, product_id)
        if product is None:
            raise NotFound(f"Product {product_id} not found")
        if not product.is_active:
            raise RequestError(f"Product {product.sku} is inactive")

        unit_price = product.price_for(requester.price_tier)

        req = TransferRequest(
            request_number=next_document_number(document_type="TRANSFER_REQUEST", prefix="PO"),
            requester_account_id=requester.id,
            fulfiller_account_id=fulfiller.id,
            product_id=product.id,
            quantity=quantity,
            unit_price_cents=unit_price,
            total_price_cents=unit_price * quantity if unit_price is not None else None,
            status=RequestStatus.PENDING,
            note=note,
            requested_at=utcnow(),
        )
        db.session.add(req)
        db.session.commit()
        return req

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def approve_request(request_id: int, *, actor_account_id: int | None = None) -> TransferRequest:
    """
    Approve a pending request and move the stock exactly once.

    Raises:
        NotFound: unknown request
        RequestError: actor is not the fulfilling account
        AlreadyDecided: request is not pending
        InsufficientStock: fulfiller cannot cover the quantity (request stays pending)
    """
    def _op():
        begin_immediate()
        req = _locked_request(request_id)
        if actor_account_id is not None and actor_account_id != req.fulfiller_account_id:
            raise RequestError("Only the fulfilling account may approve this request")
        _ensure_pending(req, "approve")

        transfer_service.transfer(
            req.fulfiller_account_id,
            req.requester_account_id,
            req.product_id,
            req.quantity,
            transfer_request_id=req.id,
            note=f"Request {req.request_number}",
            commit=False,
        )

        req.status = RequestStatus.APPROVED
        req.decided_at = utcnow()
        req.decided_by_account_id = actor_account_id or req.fulfiller_account_id
        _decided(req)
        db.session.commit()
        logger.info(
            "Request approved: %s product=%s qty=%s %s -> %s",
            req.request_number, req.product_id, req.quantity,
            req.fulfiller_account_id, req.requester_account_id,
        )
        return req

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def reject_request(request_id: int, reason: str, *, actor_account_id: int | None = None) -> TransferRequest:
    """Reject a pending request; the reason is kept for audit."""
    if not reason or not reason.strip():
        raise RequestError("A rejection reason is required")

    def _op():
        begin_immediate()
        req = _locked_request(request_id)
        if actor_account_id is not None and actor_account_id != req.fulfiller_account_id:
            raise RequestError("Only the fulfilling account may reject this request")
        _ensure_pending(req, "reject")

        req.status = RequestStatus.REJECTED
        req.rejection_reason = reason.strip()
        req.decided_at = utcnow()
        req.decided_by_account_id = actor_account_id or req.fulfiller_account_id
        _decided(req)
        db.session.commit()
        logger.info("Request rejected: %s reason=%r", req.request_number, req.rejection_reason)
        return req

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def cancel_request(request_id: int, *, actor_account_id: int) -> TransferRequest:
    """Withdraw a pending request. Only the requester may cancel."""
    def _op():
        begin_immediate()
        req = _locked_request(request_id)
        if actor_account_id != req.requester_account_id:
            raise RequestError("Only the requesting account may cancel this request")
        _ensure_pending(req, "cancel")

        req.status = RequestStatus.CANCELLED
        req.decided_at = utcnow()
        req.decided_by_account_id = actor_account_id
        _decided(req)
        db.session.commit()
        return req

    try:
        return run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def get_request(request_id: int) -> TransferRequest:
    req = db.session.get(TransferRequest, request_id)
    if req is None:
        raise NotFound(f"Transfer request {request_id} not found")
    return req


def list_requests(
    *,
    requester_account_id: int | None = None,
    fulfiller_account_id: int | None = None,
    status: RequestStatus | None = None,
) -> list[TransferRequest]:
    q = db.session.query(TransferRequest)
    if requester_account_id is not None:
        q = q.filter(TransferRequest.requester_account_id == requester_account_id)
    if fulfiller_account_id is not None:
        q = q.filter(TransferRequest.fulfiller_account_id == fulfiller_account_id)
    if status is not None:
        q = q.filter(TransferRequest.status == RequestStatus(status))
    return q.order_by(TransferRequest.requested_at.desc(), TransferRequest.id.desc()).all()
