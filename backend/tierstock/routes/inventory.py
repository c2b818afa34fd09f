# backend/tierstock/routes/inventory.py
"""
Inventory API routes: balances, movement history, HQ stock-in and direct
stock-out to downstream accounts.

Balances are read-only here; every write goes through the transfer engine.
"""
from flask import Blueprint, request, jsonify

from ..services import ledger_service, transfer_service
from ..time_utils import parse_iso_datetime


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/<int:account_id>/balances")
def list_balances(account_id: int):
    include_zero = request.args.get("include_zero", "false").lower() == "true"
    balances = ledger_service.list_balances(account_id, include_zero=include_zero)
    return jsonify({
        "account_id": account_id,
        "balances": [b.to_dict() for b in balances],
    })


@inventory_bp.get("/<int:account_id>/balances/<int:product_id>")
def get_balance(account_id: int, product_id: int):
    return jsonify({
        "account_id": account_id,
        "product_id": product_id,
        "quantity": ledger_service.get_balance(account_id, product_id),
    })


@inventory_bp.get("/<int:account_id>/movements")
def list_movements(account_id: int):
    """
    Movement history for an account, newest first.

    Query params: product_id, since, until (ISO-8601), limit (default 200)
    """
    try:
        movements = transfer_service.list_movements(
            account_id,
            product_id=request.args.get("product_id", type=int),
            since=parse_iso_datetime(request.args.get("since")),
            until=parse_iso_datetime(request.args.get("until")),
            limit=min(request.args.get("limit", 200, type=int), 1000),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"movements": [m.to_dict() for m in movements]})


@inventory_bp.post("/receive")
def receive_stock():
    """
    Stock entering the chain from production (HQ stock-in).

    Request body:
    {
        "account_id": int,
        "product_id": int,
        "quantity": int,
        "note": str (optional)
    }

    Returns:
        201: TransferResult
        400: invalid quantity / missing field
        404: unknown account or product
    """
    data = request.get_json() or {}
    try:
        result = transfer_service.receive_stock(
            data["account_id"],
            data["product_id"],
            data["quantity"],
            note=data.get("note"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400

    return jsonify({"transfer": result.to_dict()}), 201


@inventory_bp.post("/transfer")
def stock_out():
    """
    Push stock straight to a downstream account (no purchase request).

    Request body:
    {
        "from_account_id": int,
        "to_account_id": int,
        "product_id": int,
        "quantity": int,
        "note": str (optional)
    }

    Returns:
        201: TransferResult
        400: invalid quantity / wrong tier / missing field
        409: insufficient stock
    """
    data = request.get_json() or {}
    try:
        result = transfer_service.stock_out(
            data["from_account_id"],
            data["to_account_id"],
            data["product_id"],
            data["quantity"],
            note=data.get("note"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400

    return jsonify({"transfer": result.to_dict()}), 201
