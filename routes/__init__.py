"""Blueprint registration and service health."""
from datetime import datetime

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from utils.realtime import presence
from .admin import admin_bp
from .ai import ai_bp
from .auth import auth_bp
from .dashboard import dashboard_bp
from .garbage import garbage_bp
from .geocoding import geocoding_bp
from .notifications import notifications_bp
from .reports import reports_bp

main_bp = Blueprint("main", __name__)

API_BLUEPRINTS = (
    (auth_bp, "/api/auth"),
    (reports_bp, "/api/reports"),
    (dashboard_bp, "/api/dashboard"),
    (admin_bp, "/api/admin"),
    (garbage_bp, "/api/garbage"),
    (geocoding_bp, "/api/geocoding"),
    (ai_bp, "/api/ai"),
    (notifications_bp, "/api/notifications"),
)


@main_bp.route("/api/health", methods=["GET"])
def health():
    database = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Health check database query failed")
        database = "unavailable"
    return jsonify(
        {
            "success": database == "ok",
            "status": "OK" if database == "ok" else "DEGRADED",
            "database": database,
            "connectedUsers": presence.online_count(),
            "timestamp": datetime.utcnow().isoformat(),
        }
    ), (200 if database == "ok" else 503)


def register_blueprints(app) -> None:
    app.register_blueprint(main_bp)
    for blueprint, prefix in API_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)


__all__ = [
    "main_bp",
    "auth_bp",
    "reports_bp",
    "dashboard_bp",
    "admin_bp",
    "garbage_bp",
    "geocoding_bp",
    "ai_bp",
    "notifications_bp",
    "register_blueprints",
]
