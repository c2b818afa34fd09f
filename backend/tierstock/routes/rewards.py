# backend/tierstock/routes/rewards.py
from flask import Blueprint, request, jsonify

from ..services import reward_service


rewards_bp = Blueprint("rewards", __name__, url_prefix="/api/rewards")


@rewards_bp.get("/<int:account_id>/progress")
def reward_progress(account_id: int):
    """
    Purchase volume vs. active reward targets.

    Query params: year (required), month (1-12, omit for the yearly view)
    """
    year = request.args.get("year", type=int)
    month = request.args.get("month", type=int)
    if year is None:
        return jsonify({"error": "year required"}), 400
    if month is not None and not 1 <= month <= 12:
        return jsonify({"error": "month must be between 1 and 12"}), 400
    return jsonify(reward_service.reward_progress(account_id, year, month))


@rewards_bp.post("/targets")
def create_target():
    """
    Request body:
    {
        "role": str, "sub_role": str (optional), "year": int,
        "month": int (optional, omit for yearly), "min_quantity": int,
        "description": str
    }
    """
    data = request.get_json() or {}
    try:
        target = reward_service.create_reward_target(
            role=data["role"],
            sub_role=data.get("sub_role"),
            year=data["year"],
            month=data.get("month"),
            min_quantity=data["min_quantity"],
            description=data["description"],
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"target": target.to_dict()}), 201
