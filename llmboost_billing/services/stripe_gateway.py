# stripe_gateway.py - thin wrapper over the Stripe SDK
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import stripe

from llmboost_billing.errors import GatewayError
from llmboost_billing.webhooks.events import StripeEvent, StripeSubscription
from llmboost_billing.webhooks.security import ALLOWED_DRIFT_SECONDS, verify_signature

logger = logging.getLogger(__name__)

PRORATE = "create_prorations"
NO_PRORATION = "none"


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    url: Optional[str]


def _to_dict(obj: Any) -> dict:
    if isinstance(obj, Mapping):
        return dict(obj)
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


class StripeGateway:
    """
    Every outbound call to Stripe goes through this class.

    Calls are made with this instance's API key and are never retried here;
    callers decide what a failure means. Any ``stripe.StripeError`` comes
    back out as a GatewayError carrying Stripe's own message.
    """

    def __init__(self, secret_key: str, timeout: int = 30):
        self.secret_key = secret_key
        self.timeout = timeout
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.new_default_http_client(timeout=timeout)

    def _call(self, operation: str, fn, *args, **params):
        try:
            return fn(*args, api_key=self.secret_key, **params)
        except stripe.StripeError as e:
            logger.warning(
                "Stripe request failed",
                extra={
                    "stripe_operation": operation,
                    "http_status": e.http_status,
                    "stripe_code": e.code,
                },
            )
            raise GatewayError(e.user_message or str(e), e.http_status, e.code) from e

    # ---- customers ----

    def ensure_customer(self, email: str, user_id: str, existing_customer_id: Optional[str] = None) -> str:
        """Return a live customer id, creating one when the given id is missing or unusable."""
        if existing_customer_id:
            try:
                customer = self._call("retrieve_customer", stripe.Customer.retrieve, existing_customer_id)
            except GatewayError:
                logger.info(
                    "Stored Stripe customer not retrievable, creating a new one",
                    extra={"user_id": user_id, "customer_id": existing_customer_id},
                )
            else:
                if not _field(customer, "deleted"):
                    return _field(customer, "id")

        customer = self._call(
            "create_customer",
            stripe.Customer.create,
            email=email,
            metadata={"user_id": user_id},
        )
        return _field(customer, "id")

    # ---- sessions ----

    def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        user_id: str,
        plan_code: str,
        success_url: str,
        cancel_url: str,
        upgrade_from_subscription_id: Optional[str] = None,
        promotion_code_id: Optional[str] = None,
    ) -> CheckoutSession:
        metadata = {"plan_code": plan_code}
        if upgrade_from_subscription_id:
            metadata["upgrade_from_subscription_id"] = upgrade_from_subscription_id

        params = {
            "mode": "subscription",
            "customer": customer_id,
            "client_reference_id": user_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "subscription_data": {"metadata": metadata},
        }
        if promotion_code_id:
            params["discounts"] = [{"promotion_code": promotion_code_id}]

        session = self._call("create_checkout_session", stripe.checkout.Session.create, **params)
        return CheckoutSession(session_id=_field(session, "id"), url=_field(session, "url"))

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        session = self._call(
            "create_portal_session",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return _field(session, "url")

    # ---- subscriptions ----

    def get_subscription(self, subscription_id: str) -> StripeSubscription:
        subscription = self._call("retrieve_subscription", stripe.Subscription.retrieve, subscription_id)
        return StripeSubscription.from_object(_to_dict(subscription))

    def cancel_at_period_end(self, subscription_id: str) -> StripeSubscription:
        subscription = self._call(
            "cancel_at_period_end",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=True,
        )
        return StripeSubscription.from_object(_to_dict(subscription))

    def cancel_immediately(self, subscription_id: str) -> None:
        self._call("cancel_subscription", stripe.Subscription.cancel, subscription_id)

    def change_subscription_price(
        self,
        subscription_id: str,
        subscription_item_id: str,
        new_price_id: str,
        proration_behavior: str,
    ) -> StripeSubscription:
        subscription = self._call(
            "change_subscription_price",
            stripe.Subscription.modify,
            subscription_id,
            items=[{"id": subscription_item_id, "price": new_price_id}],
            proration_behavior=proration_behavior,
        )
        return StripeSubscription.from_object(_to_dict(subscription))

    def upgrade_subscription_price(
        self, subscription_id: str, subscription_item_id: str, new_price_id: str
    ) -> StripeSubscription:
        return self.change_subscription_price(subscription_id, subscription_item_id, new_price_id, PRORATE)

    # ---- webhooks ----

    def verify_webhook_signature(
        self,
        payload: str,
        signature_header: Optional[str],
        secret: str,
        tolerance: int = ALLOWED_DRIFT_SECONDS,
        now: Optional[int] = None,
    ) -> StripeEvent:
        return verify_signature(payload, signature_header, secret, tolerance=tolerance, now=now)
