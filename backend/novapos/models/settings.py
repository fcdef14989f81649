from __future__ import annotations

from ..extensions import db
from novapos.time_utils import to_utc_z, utcnow


class StoreSetting(db.Model):
    """
    Key-value settings editable at runtime (low-stock threshold, ...).

    Values are stored as text; the settings service owns parsing and
    validation per key. A missing row means "use the config default".
    """
    __tablename__ = "store_settings"
    __table_args__ = (
        db.UniqueConstraint("key", name="uq_store_settings_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), nullable=False)
    value = db.Column(db.Text, nullable=True)

    updated_by = db.Column(db.String(255), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "value": self.value,
            "updated_by": self.updated_by,
            "updated_at": to_utc_z(self.updated_at),
        }


class ExpenseCategory(db.Model):
    """Category an expense can be filed under. Expenses keep the name as text."""
    __tablename__ = "expense_categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_expense_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "created_at": to_utc_z(self.created_at)}
