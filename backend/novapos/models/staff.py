from __future__ import annotations

from enum import Enum

from ..extensions import db
from novapos.time_utils import to_utc_z, utcnow


class EmployeeStatus(str, Enum):
    ACTIVE = "active"
    ON_BREAK = "on-break"
    CLOCKED_OUT = "clocked-out"


class Branch(db.Model):
    """
    Physical branch (shop front) of the business.

    Sales and expenses record branch_id and branch name as plain values,
    so removing a branch never rewrites history.
    """
    __tablename__ = "branches"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=False, default="General Business District")
    phone = db.Column(db.String(64), nullable=False, default="N/A")
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<Branch id={self.id!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "phone": self.phone,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Employee(db.Model):
    """
    Staff member on the roster.

    role is the free-form job title ("Store Manager", "Head Barista", ...).
    Authorization never compares it directly; auth_service maps it to a
    StaffRole through an explicit table.

    SECURITY: pin is a 4-digit code stored and compared as plain text,
    exactly as the roster has always worked. See DESIGN.md before hardening.
    """
    __tablename__ = "employees"

    id = db.Column(db.String(64), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(64), nullable=False, default="Cashier")
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=EmployeeStatus.ACTIVE.value)
    pin = db.Column(db.String(4), nullable=False)

    home_branch_id = db.Column(db.String(64), db.ForeignKey("branches.id", ondelete="SET NULL"), nullable=True, index=True)

    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_status_change = db.Column(db.DateTime(timezone=True), nullable=True)

    home_branch = db.relationship("Branch", backref=db.backref("employees", lazy=True))

    def __repr__(self) -> str:
        return f"<Employee id={self.id!r} name={self.name!r} role={self.role!r}>"

    def to_dict(self) -> dict:
        # pin never leaves the service layer
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "email": self.email,
            "phone": self.phone,
            "status": self.status,
            "home_branch_id": self.home_branch_id,
            "joined_at": to_utc_z(self.joined_at),
            "last_status_change": to_utc_z(self.last_status_change) if self.last_status_change else None,
        }
