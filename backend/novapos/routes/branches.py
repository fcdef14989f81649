# Overview: Flask API routes for branches; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..models import Branch
from ..services import branch_service
from ..services.branch_service import BranchError
from ..validation import BRANCH_POLICY, validate_payload, ValidationError
from ..decorators import require_operator, require_role, MANAGER_ROLES

branches_bp = Blueprint("branches", __name__, url_prefix="/api/branches")


def _branch_error(e: BranchError):
    status = 404 if str(e) == "Branch not found" else 400
    return jsonify({"error": str(e)}), status


@branches_bp.get("")
def list_branches_route():
    """Public: the sign-in screen lists branches before anyone is attributed."""
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    branches = branch_service.list_branches(include_inactive=include_inactive)
    return jsonify({"items": [b.to_dict() for b in branches], "count": len(branches)})


@branches_bp.get("/<branch_id>")
@require_operator
def get_branch_route(branch_id: str):
    branch = branch_service.get_branch(branch_id)
    if not branch:
        return jsonify({"error": "Branch not found"}), 404
    return jsonify({"branch": branch.to_dict()})


@branches_bp.post("")
@require_operator
@require_role(*MANAGER_ROLES)
def create_branch_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Branch, payload=payload, policy=BRANCH_POLICY, partial=False)
        branch = branch_service.create_branch(
            patch["name"],
            location=patch.get("location"),
            phone=patch.get("phone"),
            code=patch.get("code"),
            branch_id=patch.get("id"),
            actor=g.session_context,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"branch": branch.to_dict()}), 201


@branches_bp.patch("/<branch_id>")
@require_operator
@require_role(*MANAGER_ROLES)
def update_branch_route(branch_id: str):
    payload = dict(request.get_json(silent=True) or {})
    payload.pop("id", None)
    payload.pop("code", None)
    try:
        patch = validate_payload(model=Branch, payload=payload, policy=BRANCH_POLICY, partial=True)
        branch = branch_service.update_branch(branch_id, actor=g.session_context, **patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except BranchError as e:
        return _branch_error(e)
    return jsonify({"branch": branch.to_dict()})


@branches_bp.delete("/<branch_id>")
@require_operator
@require_role(*MANAGER_ROLES)
def delete_branch_route(branch_id: str):
    if branch_id == g.session_context.branch_id:
        return jsonify({"error": "Cannot remove the branch you are signed in to"}), 400
    try:
        branch_service.delete_branch(branch_id, actor=g.session_context)
    except BranchError as e:
        return _branch_error(e)
    return jsonify({"ok": True})
