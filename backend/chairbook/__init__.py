# backend/chairbook/__init__.py
from flask import Flask, request
from sqlalchemy import event

from .config import Config
from .extensions import db, migrate


def _enable_sqlite_savepoints(engine) -> None:
    """
    pysqlite defers BEGIN, which breaks SAVEPOINT (audit and security event
    inserts run in nested transactions). Emit BEGIN ourselves.
    """
    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def _check_cancellation_buffer(app: Flask) -> None:
    buffer_minutes = app.config.get("CANCELLATION_BUFFER_MINUTES")
    if buffer_minutes is None or isinstance(buffer_minutes, bool) or not isinstance(buffer_minutes, int) or buffer_minutes < 0:
        raise RuntimeError("CANCELLATION_BUFFER_MINUTES must be a non-negative integer")
    if buffer_minutes == 0:
        app.logger.warning("CANCELLATION_BUFFER_MINUTES is 0: bookings can be cancelled up to their start time")


def create_app(config_overrides: dict | None = None, *, notifier_transport=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _check_cancellation_buffer(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        with app.app_context():
            _enable_sqlite_savepoints(db.engine)

    from .services import notifier
    notifier.init_app(app, transport=notifier_transport)

    from . import gateway
    gateway.init_app(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.navigation import navigation_bp
    from .routes.bookings import bookings_bp
    from .routes.pos import pos_bp
    from .routes.expenses import expenses_bp
    from .routes.catalog import catalog_bp
    from .routes.team import team_bp
    from .routes.settings import settings_bp
    from .routes.reports import reports_bp
    from .routes.customer import customer_bp
    from .routes.platform import platform_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(navigation_bp)
    app.register_blueprint(bookings_bp)
    app.register_blueprint(pos_bp)
    app.register_blueprint(expenses_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(team_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(customer_bp)
    app.register_blueprint(platform_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS", ()))
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Refresh-Token"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
