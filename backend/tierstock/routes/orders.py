# backend/tierstock/routes/orders.py
"""
Customer order lifecycle API routes.

Bulk endpoints answer 200 when every member succeeded and 207 with the
per-member outcome otherwise.
"""
from flask import Blueprint, Response, request, jsonify

from ..services import order_service
from ..time_utils import parse_iso_date


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _batch_response(result):
    return jsonify(result.to_dict()), (200 if result.ok else 207)


def _key_list(data: dict, field: str) -> list:
    keys = data.get(field) or []
    if not isinstance(keys, list):
        raise ValueError(f"{field} must be a list")
    return keys


@orders_bp.post("")
def create_order():
    """
    Record a manual sale; deducts the seller's stock.

    Request body:
    {
        "seller_account_id": int,
        "product_id": int,
        "quantity": int,
        "payment_method": "Online Transfer" | "COD" | "Cash",
        "customer_id": int (optional),
        "platform": str (optional, default "Manual"),
        "unit_price_cents": int (optional, default customer price),
        "date_order": "YYYY-MM-DD" (optional),
        "note": str (optional)
    }

    Returns:
        201: order created
        409: insufficient stock (no order is created)
    """
    data = request.get_json() or {}
    try:
        order = order_service.create_order(
            seller_account_id=data["seller_account_id"],
            product_id=data["product_id"],
            quantity=data["quantity"],
            payment_method=data["payment_method"],
            customer_id=data.get("customer_id"),
            platform=data.get("platform") or "Manual",
            unit_price_cents=data.get("unit_price_cents"),
            date_order=parse_iso_date(data.get("date_order")),
            note=data.get("note"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"order": order.to_dict()}), 201


@orders_bp.get("")
def list_orders():
    try:
        orders = order_service.list_orders(
            seller_account_id=request.args.get("seller_account_id", type=int),
            delivery_status=request.args.get("delivery_status"),
            platform=request.args.get("platform"),
            limit=min(request.args.get("limit", 200, type=int), 1000),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"orders": [o.to_dict() for o in orders]})


@orders_bp.get("/<int:order_id>")
def get_order(order_id: int):
    return jsonify({"order": order_service.get_order(order_id).to_dict()})


@orders_bp.post("/<int:order_id>/book")
def book_shipment(order_id: int):
    """
    Book with the courier. Safe to retry.

    Returns:
        200: order (Shipped)
        502: courier failed or timed out; order unchanged
    """
    return jsonify({"order": order_service.book_shipment(order_id).to_dict()})


@orders_bp.post("/<int:order_id>/tracking")
def assign_tracking(order_id: int):
    data = request.get_json() or {}
    order = order_service.assign_tracking(order_id, data.get("tracking_number") or "")
    return jsonify({"order": order.to_dict()})


@orders_bp.post("/<int:order_id>/return")
def mark_returned(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        return_date = parse_iso_date(data.get("return_date"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    order = order_service.mark_returned(order_id, return_date=return_date)
    return jsonify({"order": order.to_dict()})


@orders_bp.post("/<int:order_id>/cod-collected")
def mark_cod_collected(order_id: int):
    return jsonify({"order": order_service.mark_cod_collected(order_id).to_dict()})


@orders_bp.post("/<int:order_id>/revert")
def revert_to_pending(order_id: int):
    """
    Cancel the courier booking and move the order back to Pending.

    Returns:
        200: order (Pending)
        409: order cannot be reverted
        502: courier cancel failed; order stays Shipped
    """
    return jsonify({"order": order_service.revert_to_pending(order_id).to_dict()})


@orders_bp.post("/<int:order_id>/restock")
def restock_return(order_id: int):
    return jsonify({"order": order_service.restock_return(order_id).to_dict()})


@orders_bp.post("/waybill")
def waybill():
    """Printable labels (PDF) for the courier-booked orders in order_ids."""
    data = request.get_json() or {}
    pdf = order_service.get_waybill(data.get("order_ids") or [])
    return Response(
        pdf,
        mimetype="application/pdf",
        headers={"Content-Disposition": "attachment; filename=waybill.pdf"},
    )


@orders_bp.post("/bulk/return")
def bulk_return():
    """Request body: {"tracking_numbers": [str], "return_date": "YYYY-MM-DD" (optional)}"""
    data = request.get_json() or {}
    try:
        keys = _key_list(data, "tracking_numbers")
        return_date = parse_iso_date(data.get("return_date"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return _batch_response(order_service.bulk_mark_returned(keys, return_date=return_date))


@orders_bp.post("/bulk/cod-collected")
def bulk_cod_collected():
    data = request.get_json() or {}
    try:
        keys = _key_list(data, "tracking_numbers")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return _batch_response(order_service.bulk_mark_cod_collected(keys))


@orders_bp.post("/bulk/book")
def bulk_book():
    data = request.get_json() or {}
    try:
        keys = _key_list(data, "order_ids")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return _batch_response(order_service.bulk_book_shipments(keys))


@orders_bp.post("/bulk/revert")
def bulk_revert():
    data = request.get_json() or {}
    try:
        keys = _key_list(data, "order_ids")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return _batch_response(order_service.bulk_revert_to_pending(keys))
