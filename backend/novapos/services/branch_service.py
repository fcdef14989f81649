# Overview: Service-layer operations for branches; the store network directory and head-office bootstrap.

from __future__ import annotations

from ..extensions import db
from ..models import Branch
from .audit_service import record
from .document_service import next_document_number
from .session_service import SessionContext, system_context


class BranchError(Exception):
    """Raised when branch operations fail."""
    pass


def _allocate_branch_id() -> str:
    while True:
        candidate = next_document_number(document_type="BRANCH", prefix="BR")
        if db.session.query(Branch).filter_by(id=candidate).first() is None:
            return candidate


def build_branch(
    *,
    name: str,
    location: str | None = None,
    phone: str | None = None,
    code: str | None = None,
    branch_id: str | None = None,
) -> Branch:
    """
    Build and flush a branch without auditing or committing.

    Callers that open a branch as part of a larger unit of work (self
    registration) use this, then record_branch_opened() once they know who
    to attribute it to.
    """
    if not name or not name.strip():
        raise BranchError("Branch name is required")

    if branch_id is not None and db.session.query(Branch).filter_by(id=branch_id).first():
        raise BranchError("Branch id already exists")

    branch_id = branch_id or _allocate_branch_id()
    code = (code or f"NET-{branch_id[-4:]}").strip().upper()
    if db.session.query(Branch).filter_by(code=code).first():
        raise BranchError(f"Branch code {code} already in use")

    branch = Branch(
        id=branch_id,
        name=name.strip(),
        location=(location or "").strip() or "General Business District",
        phone=(phone or "").strip() or "N/A",
        code=code,
        is_active=True,
    )
    db.session.add(branch)
    db.session.flush()
    return branch


def record_branch_opened(branch: Branch, *, user: str, role: str) -> None:
    record("Network Expansion", f"New branch created: {branch.name} at {branch.location}", user=user, role=role)


def create_branch(
    name: str,
    *,
    location: str | None = None,
    phone: str | None = None,
    code: str | None = None,
    branch_id: str | None = None,
    actor: SessionContext | None = None,
) -> Branch:
    actor = actor or system_context()
    try:
        branch = build_branch(name=name, location=location, phone=phone, code=code, branch_id=branch_id)
        record_branch_opened(branch, **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return branch


def update_branch(
    branch_id: str,
    *,
    name: str | None = None,
    location: str | None = None,
    phone: str | None = None,
    is_active: bool | None = None,
    actor: SessionContext | None = None,
) -> Branch:
    actor = actor or system_context()
    try:
        branch = db.session.query(Branch).filter_by(id=branch_id).first()
        if not branch:
            raise BranchError("Branch not found")

        if name is not None:
            if not name.strip():
                raise BranchError("Branch name is required")
            branch.name = name.strip()
        if location is not None:
            branch.location = location.strip()
        if phone is not None:
            branch.phone = phone.strip()
        if is_active is not None:
            if not is_active and branch.is_active and _active_branch_count() <= 1:
                raise BranchError("Cannot deactivate the last active branch")
            branch.is_active = bool(is_active)

        record("Branch Updated", f"Branch {branch.name} ({branch.code}) updated", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return branch


def delete_branch(branch_id: str, *, actor: SessionContext | None = None) -> None:
    actor = actor or system_context()
    try:
        branch = db.session.query(Branch).filter_by(id=branch_id).first()
        if not branch:
            raise BranchError("Branch not found")
        if branch.is_active and _active_branch_count() <= 1:
            raise BranchError("Cannot remove the last active branch")

        name, code = branch.name, branch.code
        db.session.delete(branch)
        record("Branch Removed", f"Branch {name} ({code}) removed", **actor.audit_kwargs())
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _active_branch_count() -> int:
    return db.session.query(Branch).filter_by(is_active=True).count()


def get_branch(branch_id: str) -> Branch | None:
    return db.session.query(Branch).filter_by(id=branch_id).first()


def list_branches(*, include_inactive: bool = False) -> list[Branch]:
    q = db.session.query(Branch)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Branch.name.asc()).all()


DEFAULT_BRANCH = {
    "branch_id": "BR-MAIN",
    "name": "Downtown Central Branch",
    "location": "123 Main St, City Center",
    "phone": "+254 700 000 001",
    "code": "HQ-01",
}


def ensure_default_branch(*, actor: SessionContext | None = None) -> Branch:
    """Return the first branch, creating the head-office branch on an empty install."""
    branch = db.session.query(Branch).order_by(Branch.created_at.asc()).first()
    if branch is not None:
        return branch
    fields = dict(DEFAULT_BRANCH)
    return create_branch(fields.pop("name"), actor=actor, **fields)
