# Overview: Service-layer operations for runtime settings; stored key-value overrides over config defaults.

"""
Settings Service

WHY: A manager tunes some behaviour from the back office (the low-stock
threshold) without a redeploy. Config supplies the default; a StoreSetting
row, once written, overrides it.
"""

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import StoreSetting
from ..validation import coerce_int, ValidationError
from .audit_service import record
from .session_service import SessionContext, system_context

logger = logging.getLogger(__name__)

LOW_STOCK_THRESHOLD_KEY = "low_stock_threshold"
MAX_LOW_STOCK_THRESHOLD = 1_000_000


class SettingsError(ValueError):
    """Raised for invalid setting values."""
    pass


def get_setting(key: str) -> str | None:
    row = db.session.query(StoreSetting).filter_by(key=key).first()
    return row.value if row else None


def put_setting(key: str, value: str | None, *, updated_by: str | None = None) -> StoreSetting:
    """Upsert one setting row. Flushes only; the caller commits."""
    row = db.session.query(StoreSetting).filter_by(key=key).first()
    if row is None:
        row = StoreSetting(key=key)
        db.session.add(row)
    row.value = value
    row.updated_by = updated_by
    db.session.flush()
    return row


def get_low_stock_threshold() -> int:
    """Stored threshold, else config LOW_STOCK_THRESHOLD."""
    stored = get_setting(LOW_STOCK_THRESHOLD_KEY)
    if stored is not None:
        try:
            return int(stored)
        except ValueError:
            logger.warning("Ignoring unreadable %s setting: %r", LOW_STOCK_THRESHOLD_KEY, stored)
    return int(current_app.config.get("LOW_STOCK_THRESHOLD", 10))


def set_low_stock_threshold(value, *, actor: SessionContext | None = None) -> int:
    """
    Persist a new low-stock threshold (whole units, 0 disables the alert).

    Unchanged values are a no-op; otherwise audits "Settings Updated"
    with the old and new value.
    """
    actor = actor or system_context()
    try:
        threshold = coerce_int("threshold", value)
    except ValidationError as e:
        raise SettingsError(str(e))
    if threshold < 0 or threshold > MAX_LOW_STOCK_THRESHOLD:
        raise SettingsError(f"threshold must be between 0 and {MAX_LOW_STOCK_THRESHOLD}")

    previous = get_low_stock_threshold()
    if threshold == previous:
        return threshold

    try:
        put_setting(LOW_STOCK_THRESHOLD_KEY, str(threshold), updated_by=actor.cashier_name)
        record(
            "Settings Updated",
            f"Low stock threshold: {previous} -> {threshold}",
            **actor.audit_kwargs(),
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return threshold
