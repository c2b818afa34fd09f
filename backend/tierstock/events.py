# Overview: Post-commit notifications for downstream read models (balances, requests, orders).

"""
Services queue notifications on the SQLAlchemy session while they work.
Queued notifications are delivered only once the outermost transaction
commits and are dropped if it rolls back, so subscribers never observe a
balance that was not persisted.

Subscribe with blinker:

    from tierstock.events import balance_changed

    @balance_changed.connect
    def on_balance(sender, account_id, product_id, quantity):
        ...
"""

from __future__ import annotations

import logging

from blinker import Namespace
from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_signals = Namespace()

balance_changed = _signals.signal("balance-changed")
request_decided = _signals.signal("request-decided")
order_transitioned = _signals.signal("order-transitioned")

_PENDING_KEY = "tierstock.pending_notifications"


def queue_notification(session, signal, **payload) -> None:
    session.info.setdefault(_PENDING_KEY, []).append((signal, payload))


def pending_notifications(session) -> list:
    return list(session.info.get(_PENDING_KEY, []))


@event.listens_for(Session, "after_commit")
def _deliver_pending(session):
    pending = session.info.pop(_PENDING_KEY, [])
    for signal, payload in pending:
        try:
            signal.send("tierstock", **payload)
        except Exception:
            # the commit stands; subscriber errors are only logged
            logger.exception("Subscriber failed for %s", signal.name)


@event.listens_for(Session, "after_soft_rollback")
def _discard_pending(session, previous_transaction):
    # Savepoints only queue after they succeed, so only a root rollback discards.
    if previous_transaction.nested:
        return
    session.info.pop(_PENDING_KEY, None)
