# Overview: Service-layer operations for the audit trail; bounded append-only log of business actions.

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import AuditEntry
from novapos.time_utils import utcnow
"""
NovaPOS Audit Trail Invariants (authoritative)

- Append-only: entries are never updated; the only deletion is cap eviction.
- Ordering is by append sequence (AuditEntry.id); reads are newest first.
- Bounded: after every append, everything older than the newest
  AUDIT_LOG_CAP entries is evicted.
- record() flushes but does not commit, so an entry lands in the same
  transaction as the mutation it describes.
"""

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LOG_CAP = 1000
DEFAULT_USER = "Unknown"
DEFAULT_ROLE = "Cashier"


class AuditError(Exception):
    """Raised for invalid audit records."""
    pass


def _audit_cap() -> int:
    cap = current_app.config.get("AUDIT_LOG_CAP", DEFAULT_AUDIT_LOG_CAP)
    return max(1, int(cap))


def _evict_beyond_cap() -> int:
    cap = _audit_cap()
    cutoff_id = (
        db.session.query(AuditEntry.id)
        .order_by(AuditEntry.id.desc())
        .offset(cap)
        .limit(1)
        .scalar()
    )
    if cutoff_id is None:
        return 0

    evicted = (
        db.session.query(AuditEntry)
        .filter(AuditEntry.id <= cutoff_id)
        .delete(synchronize_session=False)
    )
    logger.debug("Evicted %s audit entries beyond cap %s", evicted, cap)
    return evicted


def record(
    action: str,
    details: str = "",
    *,
    user: str | None = None,
    role: str | None = None,
) -> AuditEntry:
    """
    Append one audit entry and enforce the cap.

    Always succeeds for a non-empty action. The caller owns the commit.
    """
    if action is None or not str(action).strip():
        raise AuditError("action is required")

    entry = AuditEntry(
        action=str(action).strip(),
        details=details or "",
        user=user or DEFAULT_USER,
        role=role or DEFAULT_ROLE,
        occurred_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()  # assigns the sequence id

    _evict_beyond_cap()
    return entry


def record_and_commit(
    action: str,
    details: str = "",
    *,
    user: str | None = None,
    role: str | None = None,
) -> AuditEntry:
    """Record a standalone event (login, logout) in its own transaction."""
    try:
        entry = record(action, details, user=user, role=role)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return entry


def list_entries(*, limit: int = 200, action: str | None = None) -> list[AuditEntry]:
    q = db.session.query(AuditEntry)
    if action:
        q = q.filter(AuditEntry.action == action)
    return q.order_by(AuditEntry.id.desc()).limit(limit).all()


def count_entries() -> int:
    return db.session.query(AuditEntry).count()
