from __future__ import annotations

from flask import Blueprint, jsonify

from recollect.utils.exceptions import ConflictNotFoundError, ValidationError

from .request_parsers import current_owner, json_body, services

conflict_bp = Blueprint("conflicts", __name__)


@conflict_bp.route("/conflicts", methods=["GET"])
def list_unresolved():
    conflicts = services().conflict_ledger.list_unresolved(current_owner())
    return jsonify(
        {"status": "success", "conflicts": [c.to_dict() for c in conflicts]}
    )


@conflict_bp.route("/conflicts/<conflict_id>", methods=["GET"])
def get_conflict(conflict_id: str):
    conflict = services().conflict_ledger.get(current_owner(), conflict_id)
    if conflict is None:
        raise ConflictNotFoundError(f"Conflict {conflict_id} not found")
    return jsonify({"status": "success", "conflict": conflict.to_dict()})


@conflict_bp.route("/conflicts/<conflict_id>/resolve", methods=["POST"])
def resolve_conflict(conflict_id: str):
    strategy = json_body().get("strategy")
    if not isinstance(strategy, str) or not strategy.strip():
        raise ValidationError("strategy is required")
    conflict = services().conflict_ledger.resolve(
        current_owner(), conflict_id, strategy
    )
    return jsonify({"status": "success", "conflict": conflict.to_dict()})
