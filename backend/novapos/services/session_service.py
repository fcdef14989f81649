# Overview: Attribution context for the operator performing a request.

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Branch, Employee
from .auth_service import StaffRole, effective_role

SYSTEM_OPERATOR = "System"


@dataclass(frozen=True)
class SessionContext:
    """
    Who is acting, and at which branch.

    Settlement copies cashier_name/branch_id/branch_name onto the sale;
    every audit entry takes user/role from here.
    """
    employee_id: str | None
    cashier_name: str
    role: StaffRole
    branch_id: str | None
    branch_name: str

    @property
    def is_manager_tier(self) -> bool:
        return self.role in (StaffRole.ADMIN, StaffRole.MANAGER)

    def audit_kwargs(self) -> dict:
        return {"user": self.cashier_name, "role": self.role.value}


def system_context(branch: Branch | None = None) -> SessionContext:
    """Context for CLI jobs and seeding, where no employee is signed in."""
    return SessionContext(
        employee_id=None,
        cashier_name=SYSTEM_OPERATOR,
        role=StaffRole.ADMIN,
        branch_id=branch.id if branch else None,
        branch_name=branch.name if branch else "Head Office",
    )


def context_for(employee: Employee, branch: Branch) -> SessionContext:
    return SessionContext(
        employee_id=employee.id,
        cashier_name=employee.name,
        role=effective_role(employee.role),
        branch_id=branch.id,
        branch_name=branch.name,
    )


def resolve_session(employee_id: str | None, branch_id: str | None) -> SessionContext | None:
    """
    Build the context for a request.

    Returns None when either id is missing or unknown, or the branch is
    inactive.
    """
    if not employee_id or not branch_id:
        return None

    employee = db.session.query(Employee).filter_by(id=employee_id).first()
    if employee is None:
        return None

    branch = db.session.query(Branch).filter_by(id=branch_id).first()
    if branch is None or not branch.is_active:
        return None

    return context_for(employee, branch)
