# backend/paydesk/routes/system.py
"""
System health endpoint.

Reports database reachability and the size of each collection.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Product, SaleRecord, LoyaltyCustomer, StockEffect
from ..models.ledger import EFFECT_PENDING
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "products": db.session.query(Product).count(),
            "payments": db.session.query(SaleRecord).count(),
            "loyalty_customers": db.session.query(LoyaltyCustomer).count(),
            "pending_stock_effects": db.session.query(StockEffect).filter_by(status=EFFECT_PENDING).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return {
        "status": "ok" if healthy else "degraded",
        "checked_at": to_utc_z(utcnow()),
        "database": database,
    }, 200 if healthy else 503
