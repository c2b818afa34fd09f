# backend/tierstock/routes/imports.py
"""
Point-of-sale import API routes.

Both endpoints are safe to call repeatedly for the same data; already
imported lines are reported as duplicates.
"""
from flask import Blueprint, request, jsonify

from ..services import import_service
from ..time_utils import parse_iso_date


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


@imports_bp.post("/<int:seller_account_id>/batch")
def import_batch(seller_account_id: int):
    """
    Import a pushed batch of POS transactions.

    Request body:
    {
        "sync_date": "YYYY-MM-DD" (optional),
        "transactions": [
            {
                "invoice_number": str,
                "cancelled": bool,
                "payment_method": str,
                "customer": {"name", "phone", "address", "state", "postcode", "city"},
                "lines": [{"line_index", "product_name", "sku", "quantity", "total_cents"}]
            }
        ]
    }

    Returns:
        200: ImportSummary
    """
    data = request.get_json() or {}
    try:
        sync_date = parse_iso_date(data.get("sync_date"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    transactions = import_service.transactions_from_payload(data.get("transactions"))
    summary = import_service.import_batch(seller_account_id, transactions, sync_date=sync_date)
    return jsonify({"summary": summary.to_dict()})


@imports_bp.post("/<int:seller_account_id>/sync")
def sync_from_pos(seller_account_id: int):
    """
    Fetch one local day from the POS and import it.

    Request body: {"date": "YYYY-MM-DD"}

    Returns:
        200: ImportSummary
        502: POS unavailable; nothing imported
    """
    data = request.get_json() or {}
    try:
        day = parse_iso_date(data.get("date"))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    if day is None:
        return jsonify({"error": "date required"}), 400
    summary = import_service.sync_from_pos(seller_account_id, day)
    return jsonify({"summary": summary.to_dict()})
