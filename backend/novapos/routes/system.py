# Overview: Flask API routes for system health; reports database reachability and ledger counts.

"""
System health endpoint.

Used by deployment checks and the front end's connection indicator.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Product, Sale, AuditEntry, Branch
from novapos.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "branches": db.session.query(Branch).count(),
            "products": db.session.query(Product).count(),
            "sales": db.session.query(Sale).count(),
            "audit_entries": db.session.query(AuditEntry).count(),
        }
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": details,
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "timestamp": to_utc_z(utcnow()),
        "currency": current_app.config.get("CURRENCY_CODE"),
        "database": database,
    }), status_code
