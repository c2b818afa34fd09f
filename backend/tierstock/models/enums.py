from __future__ import annotations

import enum

from ..extensions import db


class AccountRole(str, enum.Enum):
    HQ = "hq"
    MASTER_AGENT = "master_agent"
    AGENT = "agent"
    BRANCH = "branch"
    MARKETER = "marketer"


class BranchTier(str, enum.Enum):
    """Pricing sub-role of a Branch account."""
    STANDARD = "standard"
    PREMIUM = "premium"


class PriceTier(str, enum.Enum):
    HQ = "hq"
    MASTER_AGENT = "master_agent"
    AGENT = "agent"
    BRANCH_STANDARD = "branch_standard"
    BRANCH_PREMIUM = "branch_premium"
    MARKETER = "marketer"
    CUSTOMER = "customer"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


class PaymentMethod(str, enum.Enum):
    ONLINE_TRANSFER = "Online Transfer"
    COD = "COD"
    CASH = "Cash"


class DeliveryStatus(str, enum.Enum):
    PENDING = "Pending"
    SHIPPED = "Shipped"
    RETURN = "Return"


class Platform(str, enum.Enum):
    MANUAL = "Manual"
    STOREHUB = "StoreHub"
    SHOPEE = "Shopee"
    TIKTOK = "TikTok"
    WOOCOMMERCE = "WooCommerce"


class MovementKind(str, enum.Enum):
    TRANSFER = "TRANSFER"
    SALE = "SALE"
    RECEIVE = "RECEIVE"
    RESTOCK = "RESTOCK"


def enum_type(enum_cls, length: int = 32):
    """String-backed column type storing the enum *value*."""
    return db.Enum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )
