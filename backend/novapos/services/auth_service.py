# Overview: Service-layer operations for auth; role mapping and PIN checks against the staff roster.

"""
PIN Authorization Service

WHY: Every sensitive action (void, refund) must be approved by someone at
manager tier or above, and every login must be attributable.

ROLE MODEL:
Job titles on the roster are free-form ("Store Manager", "Head Barista").
They are mapped to a fixed StaffRole through ROLE_MAP; nothing else in the
codebase compares job-title strings. Unknown titles map to CASHIER.

SECURITY NOTES:
- PINs are 4 numeric digits, stored and compared in plain text.
- is_manager_pin() accepts any Admin/Manager PIN on the roster; it does not
  identify which manager approved. Both are long-standing behaviours kept as
  is until there is a requirement to harden them (see DESIGN.md).
"""

from __future__ import annotations

import logging
import re
from enum import Enum

from ..extensions import db
from ..models import Employee
from .audit_service import record_and_commit

logger = logging.getLogger(__name__)

PIN_PATTERN = re.compile(r"^\d{4}$")


class StaffRole(str, Enum):
    ADMIN = "Admin"
    MANAGER = "Manager"
    CASHIER = "Cashier"


ROLE_MAP: dict[str, StaffRole] = {
    "Store Manager": StaffRole.ADMIN,
    "Head Barista": StaffRole.MANAGER,
    "Barista": StaffRole.CASHIER,
    "Cashier": StaffRole.CASHIER,
    # Titles that already name a tier
    "Admin": StaffRole.ADMIN,
    "Manager": StaffRole.MANAGER,
}

MANAGER_TIER = frozenset({StaffRole.ADMIN, StaffRole.MANAGER})


class PinValidationError(Exception):
    """Raised when a PIN doesn't meet format requirements."""
    pass


def effective_role(job_title: str | None) -> StaffRole:
    """Map a roster job title to its StaffRole (CASHIER when unknown)."""
    if not job_title:
        return StaffRole.CASHIER
    return ROLE_MAP.get(job_title.strip(), StaffRole.CASHIER)


def validate_pin(pin) -> str:
    """
    Validate PIN format and return it as a string.

    Requirements:
    - Exactly 4 characters
    - Digits only
    """
    if pin is None:
        raise PinValidationError("PIN is required")
    value = str(pin).strip()
    if not PIN_PATTERN.match(value):
        raise PinValidationError("PIN must be exactly 4 digits")
    return value


def is_manager_pin(candidate_pin) -> bool:
    """
    True iff some Admin/Manager-tier employee has exactly this PIN.

    Malformed input is simply not a match.
    """
    if candidate_pin is None:
        return False
    pin = str(candidate_pin).strip()
    if not PIN_PATTERN.match(pin):
        return False

    for employee in db.session.query(Employee).filter_by(pin=pin).all():
        if effective_role(employee.role) in MANAGER_TIER:
            return True
    return False


def authenticate(employee_id: str, pin) -> Employee | None:
    """
    Check an employee's own PIN.

    Returns the employee on success (and audits "Session Login"),
    None otherwise. Failed attempts are logged but not audited.
    """
    employee = db.session.query(Employee).filter_by(id=employee_id).first()
    if employee is None or pin is None or employee.pin != str(pin).strip():
        logger.warning("PIN login rejected for employee %s", employee_id)
        return None

    record_and_commit(
        "Session Login",
        f"{employee.name} authenticated",
        user=employee.name,
        role=effective_role(employee.role).value,
    )
    return employee
