from __future__ import annotations

from ..extensions import db
from novapos.time_utils import to_utc_z, utcnow


class AuditEntry(db.Model):
    """
    Business-significant action (sale, status change, registration, ...).

    Append-only and bounded: the audit service evicts the oldest rows once
    the configured cap is exceeded. The autoincrement id is the ordering key;
    newest first is id descending. user and role are plain strings, not
    foreign keys, so entries outlive the employees they name.
    """
    __tablename__ = "audit_entries"
    __table_args__ = (
        db.Index("ix_audit_entries_action_id", "action", "id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    user = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False)

    action = db.Column(db.String(128), nullable=False)
    details = db.Column(db.Text, nullable=False, default="")

    def __repr__(self) -> str:
        return f"<AuditEntry id={self.id} action={self.action!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": to_utc_z(self.occurred_at),
            "user": self.user,
            "role": self.role,
            "action": self.action,
            "details": self.details,
        }
