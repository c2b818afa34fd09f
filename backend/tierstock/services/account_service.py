# Overview: Administrative actions for accounts, products and tier prices.

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import AccountInUse, NotFound, RequestError
from ..models import (
    Account,
    AccountRole,
    BranchTier,
    Customer,
    CustomerOrder,
    InventoryBalance,
    PriceTier,
    Product,
    ProductPrice,
    StockMovement,
    TransferRequest,
)
from . import ledger_service

logger = logging.getLogger(__name__)


def create_account(
    *,
    code: str,
    name: str,
    role: AccountRole,
    sub_role: BranchTier | None = None,
    parent_account_id: int | None = None,
) -> Account:
    role = AccountRole(role)
    if sub_role is not None:
        sub_role = BranchTier(sub_role)
        if role is not AccountRole.BRANCH:
            raise RequestError("Only branch accounts carry a pricing sub-role")
    elif role is AccountRole.BRANCH:
        sub_role = BranchTier.STANDARD

    if parent_account_id is not None and db.session.get(Account, parent_account_id) is None:
        raise NotFound(f"Account {parent_account_id} not found")

    account = Account(
        code=code.strip().upper(),
        name=name.strip(),
        role=role,
        sub_role=sub_role,
        parent_account_id=parent_account_id,
    )
    db.session.add(account)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise RequestError(f"Account code {account.code} already exists") from exc
    logger.info("Account created: id=%s code=%s role=%s", account.id, account.code, role.value)
    return account


def get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFound(f"Account {account_id} not found")
    return account


def _has_history(account_id: int) -> bool:
    checks = (
        db.session.query(StockMovement.id).filter(
            (StockMovement.from_account_id == account_id) | (StockMovement.to_account_id == account_id)
        ),
        db.session.query(TransferRequest.id).filter(
            (TransferRequest.requester_account_id == account_id)
            | (TransferRequest.fulfiller_account_id == account_id)
        ),
        db.session.query(CustomerOrder.id).filter(CustomerOrder.seller_account_id == account_id),
        db.session.query(Account.id).filter(Account.parent_account_id == account_id),
    )
    return any(q.first() is not None for q in checks)


def delete_account(account_id: int) -> bool:
    """
    Remove an account; refused while it still owns any stock.

    Accounts referenced by history (movements, requests, orders, child
    accounts) are deactivated instead of deleted. Returns True when the row
    was actually deleted.
    """
    account = get_account(account_id)
    if ledger_service.account_has_stock(account_id):
        raise AccountInUse(
            f"Account {account.code} still holds stock; zero out or reassign balances first",
            details={"account_id": account_id},
        )

    if _has_history(account_id):
        account.is_active = False
        db.session.commit()
        logger.info("Account deactivated (has history): id=%s code=%s", account_id, account.code)
        return False

    db.session.query(InventoryBalance).filter_by(account_id=account_id).delete(synchronize_session=False)
    db.session.query(Customer).filter_by(owner_account_id=account_id).delete(synchronize_session=False)
    db.session.delete(account)
    db.session.commit()
    logger.info("Account deleted: id=%s code=%s", account_id, account.code)
    return True


def create_product(
    *,
    sku: str,
    name: str,
    description: str | None = None,
    prices: dict[PriceTier, int] | None = None,
) -> Product:
    product = Product(sku=sku.strip(), name=name.strip(), description=description)
    db.session.add(product)
    try:
        db.session.flush()
        for tier, price_cents in (prices or {}).items():
            _upsert_price(product, PriceTier(tier), price_cents)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise RequestError(f"Product SKU {sku.strip()} already exists") from exc
    except RequestError:
        db.session.rollback()
        raise
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


def _upsert_price(product: Product, tier: PriceTier, price_cents: int) -> ProductPrice:
    if isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents < 0:
        raise RequestError("price_cents must be a non-negative integer")
    row = db.session.query(ProductPrice).filter_by(product_id=product.id, tier=tier).first()
    if row is None:
        row = ProductPrice(product_id=product.id, tier=tier, price_cents=price_cents)
        db.session.add(row)
        product.prices.append(row)
    else:
        row.price_cents = price_cents
    return row


def set_product_price(product_id: int, tier: PriceTier, price_cents: int) -> Product:
    product = get_product(product_id)
    _upsert_price(product, PriceTier(tier), price_cents)
    db.session.commit()
    return product


def set_product_active(product_id: int, is_active: bool) -> Product:
    product = get_product(product_id)
    product.is_active = bool(is_active)
    db.session.commit()
    return product


def list_accounts(*, role: AccountRole | None = None, include_inactive: bool = False) -> list[Account]:
    q = db.session.query(Account)
    if role is not None:
        q = q.filter(Account.role == AccountRole(role))
    if not include_inactive:
        q = q.filter(Account.is_active.is_(True))
    return q.order_by(Account.code).all()


def list_products(*, include_inactive: bool = False) -> list[Product]:
    q = db.session.query(Product)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    return q.order_by(Product.sku).all()
