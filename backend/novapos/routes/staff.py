# Overview: Flask API routes for the staff roster and PIN sign-in; parses input and returns JSON responses.

"""
Staff and auth routes.

/api/staff is roster management (Admin only, matching the HR screen),
except that any operator may change their own clock status.
/api/auth is unattributed: PIN sign-in and self registration.
"""
from flask import Blueprint, request, jsonify, g

from ..models import Employee
from ..services import staff_service, auth_service, branch_service
from ..services.auth_service import PinValidationError, StaffRole, effective_role
from ..services.branch_service import BranchError
from ..services.session_service import context_for
from ..services.staff_service import StaffError
from ..validation import EMPLOYEE_POLICY, validate_payload, ValidationError
from ..decorators import require_operator, require_role

staff_bp = Blueprint("staff", __name__, url_prefix="/api/staff")
auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _employee_dict(employee: Employee) -> dict:
    d = employee.to_dict()
    d["effective_role"] = effective_role(employee.role).value
    return d


def _staff_error(e: Exception):
    status = 404 if str(e) == "Employee not found" else 400
    return jsonify({"error": str(e)}), status


def _register(payload: dict, actor):
    try:
        employee = staff_service.register_employee(
            name=payload.get("name"),
            pin=payload.get("pin"),
            role=payload.get("role") or "Cashier",
            email=payload.get("email"),
            phone=payload.get("phone"),
            branch_id=payload.get("branch_id"),
            new_branch=payload.get("new_branch"),
            actor=actor,
        )
    except (StaffError, PinValidationError, BranchError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"employee": _employee_dict(employee)}), 201


@staff_bp.get("")
@require_operator
@require_role(StaffRole.ADMIN)
def list_staff_route():
    employees = staff_service.list_employees(branch_id=request.args.get("branch_id"))
    return jsonify({"items": [_employee_dict(e) for e in employees], "count": len(employees)})


@staff_bp.get("/<employee_id>")
@require_operator
@require_role(StaffRole.ADMIN)
def get_staff_route(employee_id: str):
    employee = staff_service.get_employee(employee_id)
    if not employee:
        return jsonify({"error": "Employee not found"}), 404
    return jsonify({"employee": _employee_dict(employee)})


@staff_bp.post("")
@require_operator
@require_role(StaffRole.ADMIN)
def create_staff_route():
    return _register(request.get_json(silent=True) or {}, g.session_context)


@staff_bp.patch("/<employee_id>")
@require_operator
@require_role(StaffRole.ADMIN)
def update_staff_route(employee_id: str):
    payload = dict(request.get_json(silent=True) or {})
    pin = payload.pop("pin", None)
    try:
        patch = validate_payload(model=Employee, payload=payload, policy=EMPLOYEE_POLICY, partial=True)
        if pin is not None:
            patch["pin"] = pin
        employee = staff_service.update_employee(employee_id, patch, actor=g.session_context)
    except (ValidationError, PinValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except StaffError as e:
        return _staff_error(e)
    return jsonify({"employee": _employee_dict(employee)})


@staff_bp.delete("/<employee_id>")
@require_operator
@require_role(StaffRole.ADMIN)
def delete_staff_route(employee_id: str):
    try:
        staff_service.delete_employee(employee_id, actor=g.session_context)
    except StaffError as e:
        return _staff_error(e)
    return jsonify({"ok": True})


@staff_bp.post("/<employee_id>/status")
@require_operator
def set_status_route(employee_id: str):
    """Body: {"status": "active" | "on-break" | "clocked-out"}"""
    context = g.session_context
    if context.employee_id != employee_id and context.role != StaffRole.ADMIN:
        return jsonify({"error": "Permission denied"}), 403

    payload = request.get_json(silent=True) or {}
    try:
        employee = staff_service.set_employee_status(employee_id, payload.get("status"), actor=context)
    except StaffError as e:
        return _staff_error(e)
    return jsonify({"employee": _employee_dict(employee)})


@auth_bp.post("/login")
def login_route():
    """
    PIN sign-in.

    Body: {"employee_id": "EMP-1", "pin": "1234", "branch_id": "BR-0001"}
    branch_id defaults to the employee's home branch. On success the client
    sends employee_id/branch_id as X-Employee-Id/X-Branch-Id afterwards.
    """
    payload = request.get_json(silent=True) or {}
    employee_id = payload.get("employee_id")
    if not employee_id or payload.get("pin") is None:
        return jsonify({"error": "employee_id and pin required"}), 400

    employee = auth_service.authenticate(employee_id, payload.get("pin"))
    if employee is None:
        return jsonify({"error": "Invalid credentials"}), 401

    branch = branch_service.get_branch(payload.get("branch_id") or employee.home_branch_id or "")
    if branch is None or not branch.is_active:
        return jsonify({"error": "Branch not available"}), 400

    context = context_for(employee, branch)
    return jsonify({
        "employee": _employee_dict(employee),
        "branch": branch.to_dict(),
        "role": context.role.value,
    })


@auth_bp.post("/register")
def register_route():
    """
    Self registration from the sign-in screen.

    Body: name, pin, role, email, phone, and either branch_id or
    new_branch {name, location, phone}.
    """
    return _register(request.get_json(silent=True) or {}, None)
