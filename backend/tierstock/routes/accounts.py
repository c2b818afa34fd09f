# backend/tierstock/routes/accounts.py
"""
Administrative API routes for accounts and products.
"""
from flask import Blueprint, request, jsonify

from ..services import account_service


accounts_bp = Blueprint("accounts", __name__, url_prefix="/api")


@accounts_bp.post("/accounts")
def create_account():
    """
    Create an account.

    Request body:
    {
        "code": str,
        "name": str,
        "role": "hq" | "master_agent" | "agent" | "branch" | "marketer",
        "sub_role": "standard" | "premium" (branch only, optional),
        "parent_account_id": int (optional)
    }
    """
    data = request.get_json() or {}
    try:
        account = account_service.create_account(
            code=data["code"],
            name=data["name"],
            role=data["role"],
            sub_role=data.get("sub_role"),
            parent_account_id=data.get("parent_account_id"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"account": account.to_dict()}), 201


@accounts_bp.get("/accounts")
def list_accounts():
    role = request.args.get("role")
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    try:
        accounts = account_service.list_accounts(role=role, include_inactive=include_inactive)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"accounts": [a.to_dict() for a in accounts]})


@accounts_bp.get("/accounts/<int:account_id>")
def get_account(account_id: int):
    return jsonify({"account": account_service.get_account(account_id).to_dict()})


@accounts_bp.delete("/accounts/<int:account_id>")
def delete_account(account_id: int):
    """
    Delete an account, or deactivate it when history references it.

    Returns:
        200: {"deleted": bool}
        409: account still holds stock
    """
    deleted = account_service.delete_account(account_id)
    return jsonify({"deleted": deleted, "deactivated": not deleted})


@accounts_bp.post("/products")
def create_product():
    """
    Create a product with an optional tier price schedule.

    Request body:
    {
        "sku": str,
        "name": str,
        "description": str (optional),
        "prices": {"agent": 2500, "customer": 3900, ...} (cents, optional)
    }
    """
    data = request.get_json() or {}
    try:
        product = account_service.create_product(
            sku=data["sku"],
            name=data["name"],
            description=data.get("description"),
            prices=data.get("prices") or {},
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"product": product.to_dict()}), 201


@accounts_bp.get("/products")
def list_products():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    products = account_service.list_products(include_inactive=include_inactive)
    return jsonify({"products": [p.to_dict() for p in products]})


@accounts_bp.put("/products/<int:product_id>/prices/<tier>")
def set_product_price(product_id: int, tier: str):
    data = request.get_json() or {}
    try:
        product = account_service.set_product_price(product_id, tier, data["price_cents"])
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"product": product.to_dict()})


@accounts_bp.patch("/products/<int:product_id>")
def update_product(product_id: int):
    """Only the activity flag may change once a product is in use."""
    data = request.get_json() or {}
    if "is_active" not in data:
        return jsonify({"error": "is_active required"}), 400
    product = account_service.set_product_active(product_id, data["is_active"])
    return jsonify({"product": product.to_dict()})
