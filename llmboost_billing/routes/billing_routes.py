import logging

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from llmboost_billing.errors import MalformedEventError, ServiceError, WebhookSignatureError
from llmboost_billing.extensions import db
from llmboost_billing.services import BillingService
from llmboost_billing.webhooks import WebhookDispatcher

logger = logging.getLogger(__name__)

bp = Blueprint("billing", __name__, url_prefix="/api/billing")


def _service():
    return BillingService(
        db.session,
        current_app.extensions["stripe_gateway"],
        current_app.extensions["plan_map"],
    )


def _require(data, *fields):
    """Raise a 422 naming every missing field."""
    missing = [name for name in fields if not str(data.get(name) or "").strip()]
    if missing:
        raise ServiceError("VALIDATION_ERROR", 422, f"{', '.join(missing)} required")


def _json_body():
    """Parsed JSON object body; anything else counts as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@bp.route("/checkout", methods=["POST"])
@jwt_required()
def checkout():
    """Start a Stripe Checkout session for a paid plan"""
    data = _json_body()
    _require(data, "plan", "successUrl", "cancelUrl")
    session = _service().checkout(
        user_id=get_jwt_identity(),
        plan=data["plan"],
        success_url=data["successUrl"],
        cancel_url=data["cancelUrl"],
        promo_code=data.get("promoCode"),
    )
    return jsonify({"data": session}), 200


@bp.route("/upgrade", methods=["POST"])
@jwt_required()
def upgrade():
    data = _json_body()
    _require(data, "plan", "successUrl", "cancelUrl")
    result = _service().upgrade(
        user_id=get_jwt_identity(),
        plan=data["plan"],
        success_url=data["successUrl"],
        cancel_url=data["cancelUrl"],
    )
    return jsonify({"data": result}), 200


@bp.route("/downgrade", methods=["POST"])
@jwt_required()
def downgrade():
    data = _json_body()
    _require(data, "plan")
    result = _service().downgrade(user_id=get_jwt_identity(), plan=data["plan"])
    return jsonify({"data": result}), 200


@bp.route("/cancel", methods=["POST"])
@jwt_required()
def cancel():
    """Cancel the current subscription at the end of the billing period"""
    return jsonify({"data": _service().cancel(get_jwt_identity())}), 200


@bp.route("/portal", methods=["POST"])
@jwt_required()
def portal():
    data = _json_body()
    _require(data, "returnUrl")
    return jsonify({"data": _service().portal(get_jwt_identity(), data["returnUrl"])}), 200


@bp.route("/validate-promo", methods=["POST"])
def validate_promo():
    data = _json_body()
    _require(data, "code")
    return jsonify({"data": _service().validate_promo(str(data["code"]).strip())}), 200


@bp.route("/usage", methods=["GET"])
@jwt_required()
def usage():
    """Current plan and its limits"""
    return jsonify({"data": _service().get_usage(get_jwt_identity())}), 200


@bp.route("/subscription", methods=["GET"])
@jwt_required()
def subscription():
    return jsonify({"data": _service().get_subscription(get_jwt_identity())}), 200


@bp.route("/payments", methods=["GET"])
@jwt_required()
def payments():
    """Payment history, newest first"""
    return jsonify({"data": _service().list_payments(get_jwt_identity())}), 200


@bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    """
    Stripe webhook endpoint.

    Returns 401 for a missing or invalid signature and 500 when the event
    could not be applied, so that Stripe redelivers it.
    """
    signature = request.headers.get("Stripe-Signature")
    if not signature:
        raise ServiceError("UNAUTHORIZED", 401, "Missing Stripe signature")

    payload = request.get_data(as_text=True)
    gateway = current_app.extensions["stripe_gateway"]

    try:
        event = gateway.verify_webhook_signature(
            payload,
            signature,
            current_app.config["STRIPE_WEBHOOK_SECRET"],
            tolerance=current_app.config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
        )
    except WebhookSignatureError as e:
        logger.warning("Stripe webhook signature verification failed", extra={"error_message": str(e)})
        raise ServiceError("UNAUTHORIZED", 401, "Invalid signature")
    except MalformedEventError as e:
        logger.warning("Stripe webhook envelope rejected", extra={"error_message": str(e)})
        raise ServiceError("VALIDATION_ERROR", 400, str(e))

    dispatcher = WebhookDispatcher(db.session, gateway, current_app.extensions["plan_map"])
    try:
        outcome = dispatcher.dispatch(event)
    except Exception:
        logger.exception(
            "Stripe webhook handler failed",
            extra={"event_id": event.id, "event_type": event.type},
        )
        raise ServiceError("INTERNAL_ERROR", 500, "Webhook processing failed")

    return jsonify({"received": True, "outcome": outcome}), 200
