"""Flask application factory for the SwachhSetu hygiene reporting API."""
import os
from typing import Optional

import click
from flask import Flask, jsonify, request
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException

import utils.realtime  # noqa: F401  registers Socket.IO handlers before init_app
from extensions import db, migrate, login_manager, socketio
from utils.logger import init_logging
from utils.security import TokenError, apply_security_headers, bearer_token_from_header, decode_access_token


def register_error_handlers(app: Flask) -> None:
    def _json(status: int, message: str):
        return jsonify({"success": False, "message": message}), status

    @app.errorhandler(400)
    def bad_request(error):
        return _json(400, getattr(error, "description", None) or "Bad request")

    @app.errorhandler(401)
    def unauthorized(error):
        return _json(401, "Not authorized, token missing or invalid")

    @app.errorhandler(403)
    def forbidden(error):
        app.logger.warning("403 Forbidden", extra={"path": request.path, "method": request.method})
        return _json(403, "You do not have permission to perform this action")

    @app.errorhandler(404)
    def not_found_error(error):
        app.logger.warning("404 Not Found", extra={"path": request.path, "method": request.method})
        return _json(404, "Route not found")

    @app.errorhandler(405)
    def method_not_allowed(error):
        return _json(405, "Method not allowed")

    @app.errorhandler(413)
    def too_large(error):
        return _json(413, "Upload exceeds the allowed size")

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.exception("500 Internal Server Error")
        return _json(500, "Something went wrong!")

    @app.errorhandler(Exception)
    def unhandled(error):
        if isinstance(error, HTTPException):
            return _json(error.code or 500, error.description or error.name)
        db.session.rollback()
        app.logger.exception("Unhandled exception", extra={"path": request.path, "method": request.method})
        return _json(500, "Something went wrong!")


def ensure_default_admin(app: Flask) -> None:
    """Ensure a default admin can log in without registering."""
    from models import User  # Local import to avoid circular dependency

    admin_email = (app.config.get("DEFAULT_ADMIN_EMAIL") or "").lower().strip()
    admin_password = app.config.get("DEFAULT_ADMIN_PASSWORD") or ""
    if not admin_email or not admin_password:
        return

    admin_user = User.query.filter_by(email=admin_email).first()
    if admin_user:
        updates = False
        if admin_user.role != "admin":
            admin_user.role = "admin"
            updates = True
        if not admin_user.is_active:
            admin_user.is_active = True
            updates = True
        if updates:
            db.session.commit()
        return

    admin_user = User(name="System Administrator", email=admin_email, role="admin", is_active=True)
    admin_user.set_password(admin_password)
    db.session.add(admin_user)
    db.session.commit()
    app.logger.info("Default admin created", extra={"email": admin_email})


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # For SQLite just make sure the parent directory exists.
        if url.database and url.database != ":memory:":
            os.makedirs(os.path.dirname(url.database) or ".", exist_ok=True)
        return

    if url.drivername.startswith("postgres"):
        db_name = url.database
        admin_url = url.set(database=os.getenv("POSTGRES_DB_ADMIN", "postgres"))
        engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
        try:
            with engine.connect() as conn:
                exists = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": db_name}
                ).scalar()
                if not exists:
                    conn.execute(text(f'CREATE DATABASE "{db_name}"'))
        except OperationalError:
            # If we cannot connect/create, let the normal app startup fail loudly later.
            pass
        finally:
            engine.dispose()


def create_app(config_name: Optional[str] = None) -> Flask:
    """Application factory with environment-aware configuration."""
    load_dotenv()

    app = Flask(__name__, instance_relative_config=True)

    # Resolve configuration
    from config import DevelopmentConfig, ProductionConfig, TestingConfig

    config_key = (config_name or os.getenv("FLASK_CONFIG") or os.getenv("FLASK_ENV") or "production").lower()
    config_map = {
        "development": DevelopmentConfig,
        "dev": DevelopmentConfig,
        "production": ProductionConfig,
        "prod": ProductionConfig,
        "testing": TestingConfig,
        "test": TestingConfig,
    }
    config_class = config_map.get(config_key, ProductionConfig)
    app.config.from_object(config_class())

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])

    # Optional instance-specific overrides
    if not app.config.get("TESTING"):
        app.config.from_pyfile("config.py", silent=True)
    os.makedirs(app.instance_path, exist_ok=True)

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=app.config["CLIENT_URL"],
        async_mode=app.config["SOCKETIO_ASYNC_MODE"],
        logger=False,
        engineio_logger=False,
    )
    utils.realtime.presence.clear()

    @login_manager.request_loader
    def load_user_from_request(req):
        from models import User  # Local import to avoid circular dependency

        token = bearer_token_from_header(req.headers.get("Authorization"))
        if not token:
            return None
        try:
            claims = decode_access_token(token)
        except TokenError as exc:
            app.logger.info("Bearer token rejected", extra={"reason": str(exc), "path": req.path})
            return None
        user = db.session.get(User, str(claims.get("sub")))
        if not user or not user.is_active:
            return None
        return user

    @login_manager.user_loader
    def load_user(user_id):
        from models import User  # Local import to avoid circular dependency

        if not user_id:
            return None
        return db.session.get(User, str(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "message": "Not authorized, token missing or invalid"}), 401

    # Blueprints
    from routes import register_blueprints
    from utils.collection_reminders import run_collection_reminders

    register_blueprints(app)

    @app.cli.command("collection-reminders")
    def collection_reminders():
        """Notify subscribers of schedules collecting today (schedule this via cron)."""
        summary = run_collection_reminders(app)
        click.echo(
            f"{summary['sent']} reminder(s) sent, {summary['skipped']} already sent, {summary['failed']} failed "
            f"for {summary['schedules']} schedule(s) on {summary['day']}"
        )

    @app.cli.command("create-admin")
    def create_admin():
        """Create or re-enable the default admin account."""
        with app.app_context():
            ensure_default_admin(app)
        click.echo(f"Default admin ensured: {app.config.get('DEFAULT_ADMIN_EMAIL') or '(not configured)'}")

    # Error handlers
    register_error_handlers(app)

    # Request lifecycle hooks
    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        db.create_all()
        ensure_default_admin(app)

    return app


if __name__ == "__main__":
    application = create_app()
    port = int(os.getenv("PORT", 5000))
    socketio.run(application, host="0.0.0.0", port=port, use_reloader=False, allow_unsafe_werkzeug=True)
