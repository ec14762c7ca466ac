# forum_bridge/factory.py
"""
Application factory: configuration, database, logging and the importer CLI.
"""

import logging
import os

from flask import Flask
from sqlalchemy import event

from config import (
    DevelopmentConfig,
    DevelopmentMonitoringConfig,
    ProductionConfig,
    ProductionMonitoringConfig,
    TestingConfig,
    TestingMonitoringConfig,
)
from config.validation import validate_and_exit
from forum_bridge.importer import init_importer
from forum_bridge.models import db
from forum_bridge.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _configure_sqlite_connection_factory(*, enable_foreign_keys: bool):
    """Return a connection hook applying concurrency-friendly pragmas."""

    def _configure_sqlite_connection(dbapi_connection, connection_record):  # pragma: no cover - instrumentation
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
            cursor.execute("PRAGMA busy_timeout=5000")
            if enable_foreign_keys:
                cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    return _configure_sqlite_connection


def _load_config(app: Flask, flask_env: str) -> None:
    # Load configuration based on the environment
    if flask_env == "production":
        app.config.from_object(ProductionConfig)
        app.config.from_object(ProductionMonitoringConfig)
    elif flask_env == "testing":
        app.config.from_object(TestingConfig)
        app.config.from_object(TestingMonitoringConfig)
    else:
        app.config.from_object(DevelopmentConfig)
        app.config.from_object(DevelopmentMonitoringConfig)


def create_app(config_overrides=None) -> Flask:
    """
    Build the Flask application.

    ``config_overrides`` is applied after the environment configuration and
    before any extension is initialised, so it can point the app at another
    database.
    """
    flask_env = os.environ.get("FLASK_ENV", "development")
    # Validate environment variables
    validate_and_exit(flask_env)

    app = Flask("forum_bridge")
    _load_config(app, flask_env)
    if config_overrides:
        app.config.update(config_overrides)

    db.init_app(app)
    setup_logging(app)
    init_importer(app)

    with app.app_context():
        engine = db.engine
        if engine.url.drivername.startswith("sqlite"):
            if not getattr(engine, "_sqlite_pragmas_configured", False):
                pragma_hook = _configure_sqlite_connection_factory(
                    enable_foreign_keys=not app.config.get("TESTING", False)
                )
                event.listen(engine, "connect", pragma_hook)
                engine._sqlite_pragmas_configured = True  # type: ignore[attr-defined]
        # Create the database tables only if not in testing mode
        if not app.config.get("TESTING", False):
            db.create_all()

    app.logger.debug("Application created", extra={"flask_env": flask_env})
    return app
