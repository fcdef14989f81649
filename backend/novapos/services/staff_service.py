# Overview: Service-layer operations for the staff roster; registration, edits and clock status.

from __future__ import annotations

from ..extensions import db
from ..models import Branch, Employee, EmployeeStatus
from novapos.time_utils import utcnow
from .audit_service import record
from .auth_service import effective_role, validate_pin
from .branch_service import build_branch, record_branch_opened
from .document_service import next_document_number
from .session_service import SessionContext, system_context

EMPLOYEE_MUTABLE_FIELDS = {"name", "role", "email", "phone", "home_branch_id"}


class StaffError(Exception):
    """Raised when roster operations fail."""
    pass


def _allocate_employee_id() -> str:
    while True:
        candidate = next_document_number(document_type="EMPLOYEE", prefix="EMP")
        if db.session.query(Employee).filter_by(id=candidate).first() is None:
            return candidate


def register_employee(
    *,
    name: str,
    pin,
    role: str = "Cashier",
    email: str | None = None,
    phone: str | None = None,
    branch_id: str | None = None,
    new_branch: dict | None = None,
    employee_id: str | None = None,
    actor: SessionContext | None = None,
) -> Employee:
    """
    Add an employee to the roster, optionally opening a new branch for them.

    new_branch takes the branch fields (name, location, phone) and wins over
    branch_id. Raises PinValidationError for a malformed PIN.
    """
    if not name or not name.strip():
        raise StaffError("Employee name is required")
    pin = validate_pin(pin)

    try:
        if new_branch is not None:
            branch = build_branch(
                name=new_branch.get("name"),
                location=new_branch.get("location"),
                phone=new_branch.get("phone"),
            )
            branch_id = branch.id
        elif branch_id is not None:
            branch = db.session.query(Branch).filter_by(id=branch_id).first()
            if branch is None:
                raise StaffError("Branch not found")
        else:
            branch = None

        if employee_id is not None and db.session.query(Employee).filter_by(id=employee_id).first():
            raise StaffError("Employee id already exists")

        employee = Employee(
            id=employee_id or _allocate_employee_id(),
            name=name.strip(),
            role=(role or "Cashier").strip(),
            email=email,
            phone=phone,
            status=EmployeeStatus.ACTIVE.value,
            pin=pin,
            home_branch_id=branch_id,
            joined_at=utcnow(),
        )
        db.session.add(employee)
        db.session.flush()

        # Self sign-up: the new employee is the actor
        audit_kwargs = actor.audit_kwargs() if actor else {
            "user": employee.name,
            "role": effective_role(employee.role).value,
        }
        if new_branch is not None:
            record_branch_opened(branch, **audit_kwargs)
        record(
            "User Registration",
            f"New user registered: {employee.name} ({employee.role}) to branch: {branch_id}",
            **audit_kwargs,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return employee


def update_employee(employee_id: str, patch: dict, *, actor: SessionContext | None = None) -> Employee:
    """Apply a partial update. PIN changes go through validate_pin."""
    actor = actor or system_context()
    try:
        employee = db.session.query(Employee).filter_by(id=employee_id).first()
        if not employee:
            raise StaffError("Employee not found")

        for key, value in patch.items():
            if key == "pin":
                employee.pin = validate_pin(value)
            elif key in EMPLOYEE_MUTABLE_FIELDS:
                if key == "name" and (not value or not str(value).strip()):
                    raise StaffError("Employee name is required")
                if key == "home_branch_id" and value is not None:
                    if db.session.query(Branch).filter_by(id=value).first() is None:
                        raise StaffError("Branch not found")
                setattr(employee, key, value)

        record("Staff Updated", f"Profile updated for {employee.name}", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return employee


def set_employee_status(employee_id: str, status: str, *, actor: SessionContext | None = None) -> Employee:
    actor = actor or system_context()
    try:
        new_status = EmployeeStatus(status)
    except ValueError:
        raise StaffError(f"Unknown status: {status}")

    try:
        employee = db.session.query(Employee).filter_by(id=employee_id).first()
        if not employee:
            raise StaffError("Employee not found")

        if employee.status != new_status.value:
            employee.status = new_status.value
            employee.last_status_change = utcnow()
            record("Staff Status", f"{employee.name} is now {new_status.value}", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return employee


def delete_employee(employee_id: str, *, actor: SessionContext | None = None) -> None:
    actor = actor or system_context()
    try:
        employee = db.session.query(Employee).filter_by(id=employee_id).first()
        if not employee:
            raise StaffError("Employee not found")
        if actor.employee_id == employee_id:
            raise StaffError("Cannot remove your own account")

        name = employee.name
        db.session.delete(employee)
        record("Staff Removed", f"{name} removed from roster", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def get_employee(employee_id: str) -> Employee | None:
    return db.session.query(Employee).filter_by(id=employee_id).first()


def list_employees(*, branch_id: str | None = None) -> list[Employee]:
    q = db.session.query(Employee)
    if branch_id:
        q = q.filter_by(home_branch_id=branch_id)
    return q.order_by(Employee.name.asc()).all()


# Starter roster for a new install; every PIN is 1234 until changed
DEFAULT_ROSTER = [
    {"employee_id": "EMP-1", "name": "Admin User", "role": "Store Manager",
     "email": "admin@dovie.com", "phone": "0700123456"},
    {"employee_id": "EMP-2", "name": "Jane Smith", "role": "Head Barista",
     "email": "jane@dovie.com", "phone": "0711222333"},
    {"employee_id": "EMP-3", "name": "John Doe", "role": "Cashier",
     "email": "john@dovie.com", "phone": "0722333444"},
]
DEFAULT_PIN = "1234"


def seed_roster(branch_id: str, *, actor: SessionContext | None = None) -> int:
    """Create DEFAULT_ROSTER when nobody is on the roster. Returns how many were added."""
    if db.session.query(Employee).count():
        return 0
    actor = actor or system_context()
    for entry in DEFAULT_ROSTER:
        register_employee(pin=DEFAULT_PIN, branch_id=branch_id, actor=actor, **entry)
    return len(DEFAULT_ROSTER)
