# Overview: Error taxonomy shared by the ledger, workflow, order and import services.

"""
Every service error carries an HTTP status and a details dict so the
blueprints can render it without knowing which service raised it.

- Ledger/workflow invariant violations are raised synchronously and the
  caller's transaction is rolled back; they never leave partial state.
- External-service failures leave local state untouched.
- Duplicate and excluded import lines are counters, not errors.
"""

from __future__ import annotations


class TierStockError(Exception):
    """Base class for domain errors."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": type(self).__name__}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidQuantity(TierStockError):
    """Quantity <= 0 (or an otherwise unusable quantity); rejected before any I/O."""


class InsufficientStock(TierStockError):
    """Attempted debit exceeds the balance."""

    status_code = 409

    def __init__(self, account_id: int, product_id: int, on_hand: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id} at account {account_id}. "
            f"On-hand: {on_hand}, requested: {requested}",
            details={
                "account_id": account_id,
                "product_id": product_id,
                "on_hand": on_hand,
                "requested": requested,
            },
        )
        self.account_id = account_id
        self.product_id = product_id
        self.on_hand = on_hand
        self.requested = requested


class AlreadyDecided(TierStockError):
    """Approve/reject/cancel on a request that already left 'pending'."""

    status_code = 409


class NotFound(TierStockError):
    status_code = 404


class RequestError(TierStockError):
    """Invalid transfer request (wrong tier, inactive product, non-requester cancel...)."""


class InvalidTransition(TierStockError):
    """Order lifecycle rule violated."""

    status_code = 409


class AccountInUse(TierStockError):
    """Account still owns nonzero balances."""

    status_code = 409


class ExternalServiceUnavailable(TierStockError):
    """Courier/POS call failed or timed out; the result is unknown."""

    status_code = 502


class PartialBatchFailure(TierStockError):
    """Some members of a bulk operation failed; successes are kept."""

    status_code = 207

    def __init__(self, result):
        super().__init__(
            f"{len(result.failed)} of {result.total} items failed",
            details=result.to_dict(),
        )
        self.result = result
