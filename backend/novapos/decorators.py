# Overview: Operator-context and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service
from .services.auth_service import StaffRole

EMPLOYEE_HEADER = "X-Employee-Id"
BRANCH_HEADER = "X-Branch-Id"


def require_operator(f):
    """
    Require an attributed operator for the request.

    Reads X-Employee-Id and X-Branch-Id and sets:
    - g.session_context: SessionContext used for sale and audit attribution

    Returns 401 when either header is missing, names an unknown
    employee or branch, or the branch is inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        employee_id = request.headers.get(EMPLOYEE_HEADER)
        branch_id = request.headers.get(BRANCH_HEADER)

        if not employee_id or not branch_id:
            return jsonify({"error": "Operator context required"}), 401

        context = session_service.resolve_session(employee_id, branch_id)
        if context is None:
            current_app.logger.warning(
                "Rejected operator context employee=%s branch=%s path=%s",
                employee_id, branch_id, request.path,
            )
            return jsonify({"error": "Unknown employee or branch"}), 401

        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: StaffRole):
    """
    Restrict a route to operators whose effective role is in roles.

    Must be stacked under @require_operator.
    """
    allowed = frozenset(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            context = getattr(g, "session_context", None)
            if context is None:
                return jsonify({"error": "Operator context required"}), 401

            if context.role not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": sorted(r.value for r in allowed),
                    "role": context.role.value,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


MANAGER_ROLES = (StaffRole.ADMIN, StaffRole.MANAGER)
