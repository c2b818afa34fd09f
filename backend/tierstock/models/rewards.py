from __future__ import annotations

from ..extensions import db
from .enums import AccountRole, BranchTier, enum_type


class RewardTarget(db.Model):
    """
    Purchase-volume target for accounts of a role in a period.

    month is NULL for a yearly target. Read-only input to reward progress;
    the ledger never writes it.
    """
    __tablename__ = "reward_targets"
    __table_args__ = (
        db.Index("ix_reward_targets_role_period", "role", "year", "month"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(enum_type(AccountRole), nullable=False)
    sub_role = db.Column(enum_type(BranchTier), nullable=True)
    month = db.Column(db.Integer, nullable=True)
    year = db.Column(db.Integer, nullable=False)
    min_quantity = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role.value,
            "sub_role": self.sub_role.value if self.sub_role else None,
            "month": self.month,
            "year": self.year,
            "min_quantity": self.min_quantity,
            "description": self.description,
            "is_active": self.is_active,
        }
