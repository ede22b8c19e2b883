# llmboost_billing/error_handlers.py
import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from llmboost_billing.errors import GatewayError, ServiceError

logger = logging.getLogger(__name__)


def _error(code: str, message: str, status_code: int):
    return jsonify({"error": {"code": code, "message": message}}), status_code


def register_error_handlers(app):
    """Register all error handlers for the application"""

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        logger.info(
            f"Service error: {error.code} - Path: {request.path}",
            extra={"code": error.code, "status_code": error.status_code},
        )
        response = jsonify(error.to_dict())
        response.status_code = error.status_code
        return response

    @app.errorhandler(GatewayError)
    def handle_gateway_error(error):
        logger.error(
            f"Stripe request failed: {error.message} - Path: {request.path}",
            extra={"http_status": error.http_status, "stripe_code": error.stripe_code},
        )
        return _error("PROVIDER_ERROR", error.message, 502)

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return _error(e.name.upper().replace(" ", "_"), e.description, e.code)

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Unexpected errors; never leak stack traces to the client."""
        logger.exception(f"Unhandled exception - Path: {request.path}")
        return _error("INTERNAL_ERROR", "An internal server error occurred. Please try again later.", 500)
