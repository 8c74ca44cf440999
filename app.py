"""Flask application factory for the UrbanWatch billboard reporting service."""
import os
from typing import Optional

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import create_engine, text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import OperationalError
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv
from utils.logger import init_logging
from utils.security import apply_security_headers, sanitize_input
from extensions import csrf, db, migrate, login_manager


ERROR_MESSAGES: dict[int, str] = {
    400: "Bad request",
    401: "Authentication required",
    403: "You do not have access to this resource",
    404: "Resource not found",
    405: "Method not allowed",
    409: "Conflict with the current state of the resource",
    413: "Upload exceeds the allowed size",
    500: "Internal server error",
}


def register_error_handlers(app: Flask) -> None:
    def _json_error(status: int, error: Optional[HTTPException] = None):
        description = getattr(error, "description", None)
        message = description if description and status not in (403, 500) else ERROR_MESSAGES[status]
        return jsonify({"success": False, "error": {"status": status, "message": message}}), status

    for status in (400, 401, 404, 405, 409, 413):

        def handler(error, status=status):
            app.logger.warning(f"{status} {ERROR_MESSAGES[status]}", extra={"path": request.path, "method": request.method})
            return _json_error(status, error)

        app.register_error_handler(status, handler)

    @app.errorhandler(403)
    def forbidden(error):
        app.logger.warning("403 Forbidden", extra={"path": request.path, "method": request.method})
        return _json_error(403, error)

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.exception("500 Internal Server Error")
        db.session.rollback()
        return _json_error(500, error)


def ensure_default_roles_and_official(app: Flask) -> None:
    """Ensure baseline roles exist and a default official can review reports without registering."""
    from models import Role, User  # Local import to avoid circular dependency

    default_roles = [
        ("Citizen", "Citizens reporting billboard violations"),
        ("Official", "Municipal officials reviewing reports and flying surveys"),
    ]

    role_cache: dict[str, Role] = {}
    for name, description in default_roles:
        role_cache[name] = Role.get_or_create(name, description=description)

    official_email = (app.config.get("DEFAULT_OFFICIAL_EMAIL") or "").lower().strip()
    official_password = app.config.get("DEFAULT_OFFICIAL_PASSWORD") or ""
    if not official_email or not official_password:
        return

    official_role = role_cache["Official"]
    official = User.query.filter_by(email=official_email).first()

    if official:
        updates = False
        if official.role != official_role:
            official.role = official_role
            updates = True
        if not official.is_active:
            official.is_active = True
            updates = True
        if updates:
            db.session.add(official)
            db.session.commit()
        return

    official = User(
        full_name="Municipal Reviewer",
        email=official_email,
        city=app.config.get("DEFAULT_OFFICIAL_CITY") or None,
        role=official_role,
        points=0,
        is_active=True,
    )
    official.set_password(official_password)
    db.session.add(official)
    db.session.commit()
    app.logger.info("Default official account created", extra={"email": official_email})


def ensure_database_exists(database_uri: str) -> None:
    """Create the target database if it does not exist (PostgreSQL + SQLite support)."""
    url = make_url(database_uri)

    if url.drivername.startswith("sqlite"):
        # For SQLite just make sure the parent directory exists; in-memory databases have none.
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


def create_app(config_name: Optional[str] = None, config_overrides: Optional[dict] = None) -> Flask:
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

    # Optional instance-specific overrides, then explicit ones from the caller
    app.config.from_pyfile("config.py", silent=True)
    if config_overrides:
        app.config.update(config_overrides)

    ensure_database_exists(app.config["SQLALCHEMY_DATABASE_URI"])
    os.makedirs(app.instance_path, exist_ok=True)
    os.makedirs(app.config["REPORT_UPLOAD_FOLDER"], exist_ok=True)
    os.makedirs(app.config["CERTIFICATE_DIR"], exist_ok=True)

    # Initialize logging early
    logger = init_logging(app)
    app.logger = logger

    # Initialize extensions
    csrf.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    login_manager.session_protection = "strong"

    @login_manager.user_loader
    def load_user(user_id):
        from models import User  # Local import to avoid circular dependency

        if not user_id:
            return None
        return db.session.get(User, str(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": {"status": 401, "message": ERROR_MESSAGES[401]}}), 401

    # Blueprints
    from routes import main_bp, auth_bp, reports_bp, rewards_bp, scans_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(reports_bp)
    app.register_blueprint(rewards_bp)
    app.register_blueprint(scans_bp)

    @app.cli.command("achievements-sync")
    def achievements_sync():
        """Re-evaluate achievements for every active account (schedule this via cron)."""
        from models import User
        from utils.points import evaluate_achievements

        unlocked = 0
        for user in User.query.filter(User.is_active.is_(True)).all():
            unlocked += len(evaluate_achievements(user))
        db.session.commit()
        click.echo(f"Unlocked {unlocked} achievements")

    # Error handlers
    register_error_handlers(app)

    # Request lifecycle hooks
    @app.before_request
    def _before_request() -> None:
        g.sanitized_args = sanitize_input(request.args)

    @app.after_request
    def _after_request(response):
        return apply_security_headers(response, force_https=app.config.get("PREFERRED_URL_SCHEME") == "https")

    # Ensure tables exist so first run creates the database structure automatically.
    with app.app_context():
        db.create_all()
        ensure_default_roles_and_official(app)

    return app


if __name__ == "__main__":
    application = create_app()
    port = int(os.getenv("PORT", 5000))
    application.run(host="0.0.0.0", port=port, use_reloader=False)
