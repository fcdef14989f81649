# Overview: Flask API routes for the audit trail; read-only, newest first.

from flask import Blueprint, request, jsonify

from ..services import audit_service
from ..services.auth_service import StaffRole
from ..decorators import require_operator, require_role

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_operator
@require_role(StaffRole.ADMIN)
def list_audit_route():
    limit = request.args.get("limit", default=200, type=int)
    entries = audit_service.list_entries(
        limit=max(1, min(limit, 1000)),
        action=request.args.get("action"),
    )
    return jsonify({
        "items": [e.to_dict() for e in entries],
        "count": len(entries),
        "total": audit_service.count_entries(),
    })
