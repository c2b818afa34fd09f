# Overview: Read-only reward progress; stock received through approved transfers vs. active targets.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..errors import RequestError
from ..models import AccountRole, BranchTier, MovementKind, RewardTarget, StockMovement
from ..time_utils import period_bounds
from .account_service import get_account


def received_quantity(account_id: int, year: int, month: int | None = None) -> int:
    """Units credited to the account by TRANSFER movements within the period."""
    start, end = period_bounds(year, month)
    total = (
        db.session.query(func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(
            StockMovement.kind == MovementKind.TRANSFER,
            StockMovement.to_account_id == account_id,
            StockMovement.occurred_at >= start,
            StockMovement.occurred_at < end,
        )
        .scalar()
    )
    return int(total or 0)


def _percent(total: int, minimum: int) -> int:
    if minimum <= 0:
        return 0
    return round(min(total / minimum * 100, 100))


def reward_progress(account_id: int, year: int, month: int | None = None) -> dict:
    """
    Compare the account's purchase volume in a month (or the whole year when
    month is None) against every active target for its role and period.

    Targets with a sub_role only apply to accounts with that sub_role.
    """
    account = get_account(account_id)
    total = received_quantity(account_id, year, month)

    q = db.session.query(RewardTarget).filter(
        RewardTarget.is_active.is_(True),
        RewardTarget.role == account.role,
        RewardTarget.year == year,
    )
    q = q.filter(RewardTarget.month.is_(None)) if month is None else q.filter(RewardTarget.month == month)
    targets = [
        t for t in q.order_by(RewardTarget.min_quantity, RewardTarget.id).all()
        if t.sub_role is None or t.sub_role is account.sub_role
    ]

    return {
        "account_id": account.id,
        "year": year,
        "month": month,
        "total_quantity": total,
        "targets": [
            {
                **target.to_dict(),
                "percent": _percent(total, target.min_quantity),
                "achieved": total >= target.min_quantity,
            }
            for target in targets
        ],
    }


def create_reward_target(
    *,
    role,
    year: int,
    min_quantity: int,
    description: str,
    month: int | None = None,
    sub_role=None,
) -> RewardTarget:
    if month is not None and not 1 <= month <= 12:
        raise RequestError("month must be between 1 and 12")
    if isinstance(min_quantity, bool) or not isinstance(min_quantity, int) or min_quantity < 0:
        raise RequestError("min_quantity must be a non-negative integer")
    target = RewardTarget(
        role=AccountRole(role),
        sub_role=BranchTier(sub_role) if sub_role is not None else None,
        year=year,
        month=month,
        min_quantity=min_quantity,
        description=description,
    )
    db.session.add(target)
    db.session.commit()
    return target
