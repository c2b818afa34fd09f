# backend/tierstock/routes/requests.py
"""
Stock request (purchase order) API routes.

The acting account is passed explicitly in the body; there is no session.
"""
from flask import Blueprint, request, jsonify

from ..services import request_service


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


@requests_bp.post("")
def create_request():
    """
    Create a pending stock request.

    Request body:
    {
        "requester_account_id": int,
        "fulfiller_account_id": int,
        "product_id": int,
        "quantity": int,
        "note": str (optional)
    }

    Returns:
        201: request created
        400: invalid quantity / wrong tier / inactive product
        404: unknown account or product
    """
    data = request.get_json() or {}
    try:
        req = request_service.create_request(
            requester_account_id=data["requester_account_id"],
            fulfiller_account_id=data["fulfiller_account_id"],
            product_id=data["product_id"],
            quantity=data["quantity"],
            note=data.get("note"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400

    return jsonify({"request": req.to_dict()}), 201


@requests_bp.get("")
def list_requests():
    try:
        requests = request_service.list_requests(
            requester_account_id=request.args.get("requester_account_id", type=int),
            fulfiller_account_id=request.args.get("fulfiller_account_id", type=int),
            status=request.args.get("status"),
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"requests": [r.to_dict() for r in requests]})


@requests_bp.get("/<int:request_id>")
def get_request(request_id: int):
    return jsonify({"request": request_service.get_request(request_id).to_dict()})


@requests_bp.post("/<int:request_id>/approve")
def approve_request(request_id: int):
    """
    Approve a pending request; stock moves fulfiller -> requester.

    Returns:
        200: approved
        409: already decided, or insufficient stock (request stays pending)
    """
    data = request.get_json(silent=True) or {}
    req = request_service.approve_request(request_id, actor_account_id=data.get("actor_account_id"))
    return jsonify({"request": req.to_dict()})


@requests_bp.post("/<int:request_id>/reject")
def reject_request(request_id: int):
    data = request.get_json(silent=True) or {}
    req = request_service.reject_request(
        request_id,
        data.get("reason") or "",
        actor_account_id=data.get("actor_account_id"),
    )
    return jsonify({"request": req.to_dict()})


@requests_bp.post("/<int:request_id>/cancel")
def cancel_request(request_id: int):
    data = request.get_json(silent=True) or {}
    if "actor_account_id" not in data:
        return jsonify({"error": "actor_account_id required"}), 400
    req = request_service.cancel_request(request_id, actor_account_id=data["actor_account_id"])
    return jsonify({"request": req.to_dict()})
