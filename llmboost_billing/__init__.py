"""
Flask application factory for the LLM Boost billing service.
"""

import logging

import sentry_sdk
from flask import Flask
from sentry_sdk.integrations.flask import FlaskIntegration

from llmboost_billing.billing.plan_map import PlanMap
from llmboost_billing.cli import register_commands
from llmboost_billing.config import get_config
from llmboost_billing.error_handlers import register_error_handlers
from llmboost_billing.extensions import init_extensions
from llmboost_billing.logging_config import setup_logging
from llmboost_billing.middleware import init_request_id_middleware
from llmboost_billing.routes import billing_bp
from llmboost_billing.services import StripeGateway

logger = logging.getLogger(__name__)


def setup_sentry(app: Flask) -> None:
    """Initialize Sentry error tracking"""
    sentry_dsn = app.config.get("SENTRY_DSN")
    if not sentry_dsn:
        return
    sentry_sdk.init(
        dsn=sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=0.1,
        environment=app.config.get("ENVIRONMENT"),
        release=app.config.get("APP_VERSION", "1.0.0"),
        send_default_pii=False,
    )
    app.logger.info("Sentry error tracking initialized")


def init_billing(app: Flask) -> None:
    """Build the long-lived billing collaborators once and hang them off the app."""
    app.extensions["plan_map"] = PlanMap.from_config(app.config)
    app.extensions["stripe_gateway"] = StripeGateway(
        app.config["STRIPE_SECRET_KEY"],
        timeout=app.config.get("STRIPE_TIMEOUT", 30),
    )


def create_app(config_name: str = None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))

    setup_logging(app)
    setup_sentry(app)
    init_request_id_middleware(app)
    init_extensions(app)
    init_billing(app)

    app.register_blueprint(billing_bp)
    register_error_handlers(app)
    register_commands(app)

    logger.info(
        "Application created",
        extra={"environment": app.config.get("ENVIRONMENT"), "version": app.config.get("APP_VERSION")},
    )
    return app
