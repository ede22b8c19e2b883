# llmboost_billing/extensions.py
"""
Flask extensions initialization module.
"""

import logging
from contextlib import contextmanager

from flask import jsonify
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
jwt = JWTManager()
migrate = Migrate()

logger = logging.getLogger(__name__)


def init_extensions(app):
    """Initialize all Flask extensions."""
    db.init_app(app)
    logger.info("SQLAlchemy initialized")

    migrate.init_app(app, db)
    logger.info("Flask-Migrate initialized")

    jwt.init_app(app)
    setup_jwt_callbacks()
    logger.info("JWT Manager initialized")

    if app.config.get("CREATE_TABLES_ON_START", False):
        create_tables(app)

    return app


def setup_jwt_callbacks():
    """Render JWT failures with the same error envelope as the API."""

    @jwt.unauthorized_loader
    def missing_token_callback(reason):
        return jsonify({"error": {"code": "UNAUTHORIZED", "message": reason}}), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(reason):
        return jsonify({"error": {"code": "UNAUTHORIZED", "message": reason}}), 401

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return jsonify({"error": {"code": "UNAUTHORIZED", "message": "Token has expired"}}), 401


def create_tables(app):
    """Create database tables (development only)."""
    # Models must be imported so their tables are registered on the metadata
    from llmboost_billing import models  # noqa: F401

    with app.app_context():
        db.create_all()
        logger.info("Database tables created")


@contextmanager
def unit_of_work(session=None):
    """
    Run a block of repository calls as a single transaction.

    Commits when the block exits cleanly and rolls back on any exception,
    which is then re-raised.
    """
    session = session or db.session
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
