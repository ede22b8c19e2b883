"""
Webhook reconciliation.

Applies verified Stripe events to the local subscription, payment, user and
promo records. Each event is handled in a single transaction together with
its processed-event ledger entry, so a failure leaves no partial writes and
a redelivery of an applied event is skipped.
"""

import logging
from datetime import datetime, timezone

import sentry_sdk

from llmboost_billing.billing.plans import PlanTier, parse_plan
from llmboost_billing.billing.state_machine import (
    BillingStateMachine,
    InvalidStateTransition,
    SubscriptionStatus,
    map_stripe_status,
)
from llmboost_billing.errors import GatewayError, MalformedEventError
from llmboost_billing.extensions import unit_of_work
from llmboost_billing.repositories import BillingQueries, PromoQueries, UserQueries
from llmboost_billing.webhooks.events import (
    CheckoutSessionCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    StripeEvent,
    SubscriptionDeleted,
    SubscriptionUpdated,
    is_handled,
    parse_event,
)
from llmboost_billing.webhooks.idempotency import EventLedger

logger = logging.getLogger(__name__)

IGNORED = "ignored"
DUPLICATE = "duplicate"
PROCESSED = "processed"


def _now():
    return datetime.now(timezone.utc)


class WebhookDispatcher:
    def __init__(self, session, gateway, plan_map):
        self.session = session
        self.gateway = gateway
        self.plan_map = plan_map
        self.billing = BillingQueries(session)
        self.users = UserQueries(session)
        self.promos = PromoQueries(session)
        self.ledger = EventLedger(session)
        self._handlers = {
            CheckoutSessionCompleted: self._checkout_completed,
            InvoicePaymentSucceeded: self._invoice_paid,
            InvoicePaymentFailed: self._invoice_failed,
            SubscriptionUpdated: self._subscription_updated,
            SubscriptionDeleted: self._subscription_deleted,
        }

    def dispatch(self, event: StripeEvent) -> str:
        """Apply ``event``; returns "ignored", "duplicate" or "processed"."""
        if not is_handled(event.type):
            logger.info("Ignoring unhandled Stripe event", extra={"event_id": event.id, "event_type": event.type})
            return IGNORED

        if self.ledger.is_processed(event.id):
            logger.info("Skipping already processed Stripe event", extra={"event_id": event.id, "event_type": event.type})
            return DUPLICATE

        payload = parse_event(event)
        handler = self._handlers[type(payload)]

        with unit_of_work(self.session):
            handler(payload)
            self.ledger.mark_processed(event.id, event.type)

        logger.info("Processed Stripe event", extra={"event_id": event.id, "event_type": event.type})
        return PROCESSED

    # ---- checkout.session.completed ----

    def _checkout_completed(self, payload: CheckoutSessionCompleted) -> None:
        subscription = self.gateway.get_subscription(payload.subscription_id)
        plan_code = subscription.metadata.get("plan_code")
        if not plan_code:
            raise MalformedEventError(f"Subscription {payload.subscription_id} missing plan_code metadata")
        if parse_plan(plan_code) is None:
            raise MalformedEventError(f"Subscription {payload.subscription_id} has unknown plan_code {plan_code!r}")

        upgrade_from = subscription.metadata.get("upgrade_from_subscription_id")
        if upgrade_from:
            self._cancel_replaced_subscription(upgrade_from, payload.subscription_id)

        if self.billing.get_subscription_by_stripe_id(payload.subscription_id) is None:
            self.billing.create_subscription(
                user_id=payload.user_id,
                plan_code=plan_code,
                status=SubscriptionStatus.ACTIVE.value,
                stripe_subscription_id=payload.subscription_id,
                stripe_customer_id=payload.customer_id,
                current_period_start=subscription.current_period_start,
                current_period_end=subscription.current_period_end,
            )

        self.users.update_plan(payload.user_id, plan_code, payload.subscription_id)

        user = self.users.get_by_id(payload.user_id)
        if user is not None and payload.customer_id and not user.stripe_customer_id:
            self.users.update_profile(payload.user_id, stripe_customer_id=payload.customer_id)

        if payload.coupon_id:
            promo = self.promos.get_by_coupon_id(payload.coupon_id)
            if promo is not None:
                self.promos.increment_redeemed(promo.id)

    def _cancel_replaced_subscription(self, old_subscription_id: str, new_subscription_id: str) -> None:
        """
        Cancel the subscription an upgrade checkout replaced.

        The local row is closed even when the provider call fails, since the
        user has moved to the new subscription either way. Provider failures
        are reported, not raised.
        """
        self.billing.cancel_subscription(old_subscription_id, _now())
        try:
            self.gateway.cancel_immediately(old_subscription_id)
        except GatewayError as e:
            logger.error(
                "Failed to cancel replaced subscription after upgrade",
                exc_info=True,
                extra={
                    "old_subscription_id": old_subscription_id,
                    "new_subscription_id": new_subscription_id,
                    "error_message": str(e),
                },
            )
            sentry_sdk.capture_exception(e)

    # ---- invoices ----

    def _invoice_paid(self, payload: InvoicePaymentSucceeded) -> None:
        if not payload.subscription_id:
            return
        if self.billing.get_payment_by_invoice_id(payload.invoice_id) is not None:
            return

        subscription = self.billing.get_subscription_by_stripe_id(payload.subscription_id)
        if subscription is None:
            logger.warning(
                "Invoice paid for unknown subscription",
                extra={"invoice_id": payload.invoice_id, "subscription_id": payload.subscription_id},
            )
            return

        if payload.period_start and payload.period_end:
            self.billing.update_subscription_period(
                payload.subscription_id, payload.period_start, payload.period_end
            )

        self.billing.create_payment(
            user_id=subscription.user_id,
            subscription_id=subscription.id,
            stripe_invoice_id=payload.invoice_id,
            amount_cents=payload.amount_paid,
            currency=payload.currency,
        )

    def _invoice_failed(self, payload: InvoicePaymentFailed) -> None:
        if not payload.subscription_id:
            return
        subscription = self.billing.get_subscription_by_stripe_id(payload.subscription_id)
        if subscription is not None and not self._allowed(subscription, SubscriptionStatus.PAST_DUE.value):
            return
        self.billing.update_subscription_status(payload.subscription_id, SubscriptionStatus.PAST_DUE.value)

    # ---- customer.subscription.* ----

    def _subscription_updated(self, payload: SubscriptionUpdated) -> None:
        remote = payload.subscription

        if remote.cancel_at_period_end:
            self.billing.mark_cancel_at_period_end(remote.id)

        plan_code = self.plan_map.plan_code_from_price_id(remote.first_price_id)
        if not plan_code:
            return
        local = self.billing.get_subscription_by_stripe_id(remote.id)
        if local is None:
            return

        status = map_stripe_status(remote.status)
        if status is not None:
            if not self._allowed(local, status.value):
                return
            self.billing.update_subscription_status(remote.id, status.value)

        self.users.update_plan(local.user_id, plan_code, remote.id)

    def _subscription_deleted(self, payload: SubscriptionDeleted) -> None:
        self.billing.cancel_subscription(payload.subscription_id, _now())

        local = self.billing.get_subscription_by_stripe_id(payload.subscription_id)
        if local is None:
            return

        # an upgrade checkout already moved the user onto a newer subscription
        user = self.users.get_by_id(local.user_id)
        if user is not None and user.stripe_sub_id and user.stripe_sub_id != payload.subscription_id:
            logger.info(
                "Deleted subscription was already replaced; keeping current plan",
                extra={"subscription_id": payload.subscription_id, "current_subscription_id": user.stripe_sub_id},
            )
            return

        self.users.update_plan(local.user_id, PlanTier.FREE.value, None)

    def _allowed(self, subscription, target: str) -> bool:
        try:
            BillingStateMachine.assert_transition(subscription.status, target)
        except InvalidStateTransition as e:
            logger.warning(
                "Refusing subscription status change: %s",
                e,
                extra={
                    "subscription_id": subscription.stripe_subscription_id,
                    "current_status": subscription.status,
                    "target_status": target,
                },
            )
            return False
        return True
