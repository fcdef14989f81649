from __future__ import annotations

from ..extensions import db
from novapos.time_utils import to_utc_z, utcnow


class Expense(db.Model):
    """Money paid out by a branch (rent, supplies, wages, ...)."""
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_branch_occurred", "branch_id", "occurred_at"),
        db.CheckConstraint("amount_cents > 0", name="ck_expenses_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False, default="Other", index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    branch_id = db.Column(db.String(64), nullable=True, index=True)
    recorded_by = db.Column(db.String(255), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "branch_id": self.branch_id,
            "recorded_by": self.recorded_by,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class DocumentSequence(db.Model):
    """
    Per-type counters for human-readable identifiers.

    WHY: Sale document numbers and generated product ids must be unique
    and readable (SALE-000001, PROD-0001).
    """
    __tablename__ = "document_sequences"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, unique=True, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
