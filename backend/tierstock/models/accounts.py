from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from .enums import AccountRole, BranchTier, PriceTier, enum_type


class Account(db.Model):
    """
    Any entity that can hold inventory: HQ, Master Agent, Agent, Branch, Marketer.

    HIERARCHY: parent_account_id points at the upstream account that normally
    fulfils this account's stock requests (Agent -> Master Agent, Marketer -> Branch).

    DELETION: an account may only be deleted while every InventoryBalance it
    owns is zero (see account_service.delete_account).
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.Index("ix_accounts_role_active", "role", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(enum_type(AccountRole), nullable=False)

    # Branch only: pricing tier sub-role
    sub_role = db.Column(enum_type(BranchTier), nullable=True)

    parent_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent_account = db.relationship("Account", remote_side=[id], backref=db.backref("child_accounts", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Account id={self.id} code={self.code!r} role={self.role.value}>"

    @property
    def price_tier(self) -> PriceTier:
        """Tier at which this account buys from its upstream."""
        if self.role is AccountRole.BRANCH:
            if self.sub_role is BranchTier.PREMIUM:
                return PriceTier.BRANCH_PREMIUM
            return PriceTier.BRANCH_STANDARD
        return {
            AccountRole.HQ: PriceTier.HQ,
            AccountRole.MASTER_AGENT: PriceTier.MASTER_AGENT,
            AccountRole.AGENT: PriceTier.AGENT,
            AccountRole.MARKETER: PriceTier.MARKETER,
        }[self.role]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "role": self.role.value,
            "sub_role": self.sub_role.value if self.sub_role else None,
            "parent_account_id": self.parent_account_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    Immutable once referenced by requests/orders/movements, except for prices
    (ProductPrice rows) and the is_active flag.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    prices = db.relationship("ProductPrice", backref="product", lazy=True, cascade="all, delete-orphan")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def price_for(self, tier: PriceTier) -> int | None:
        for price in self.prices:
            if price.tier is tier:
                return price.price_cents
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "prices": {p.tier.value: p.price_cents for p in self.prices},
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductPrice(db.Model):
    """Price schedule row: what an account of `tier` pays for one unit."""
    __tablename__ = "product_prices"
    __table_args__ = (
        db.UniqueConstraint("product_id", "tier", name="uq_product_prices_product_tier"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    tier = db.Column(enum_type(PriceTier), nullable=False)
    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )


class Customer(db.Model):
    """
    End customer of a seller account.

    Imports find-or-create by (owner_account_id, phone); all walk-in sales of a
    seller share one record with phone 'walk-in'.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("owner_account_id", "phone", name="uq_customers_owner_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=False)
    address = db.Column(db.Text, nullable=True)
    state = db.Column(db.String(64), nullable=True)
    postcode = db.Column(db.String(16), nullable=True)
    city = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    owner_account = db.relationship("Account", backref=db.backref("customers", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_account_id": self.owner_account_id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "state": self.state,
            "postcode": self.postcode,
            "city": self.city,
            "created_at": to_utc_z(self.created_at),
        }
