import logging
from typing import List, Optional

from llmboost_billing.billing.plans import (
    PAID_TIERS,
    PlanTier,
    get_plan_limits,
    is_downgrade,
    is_upgrade,
    parse_plan,
)
from llmboost_billing.billing.state_machine import SubscriptionStatus
from llmboost_billing.errors import ServiceError
from llmboost_billing.extensions import unit_of_work
from llmboost_billing.repositories import BillingQueries, PromoQueries, UserQueries
from llmboost_billing.services.stripe_gateway import NO_PRORATION

logger = logging.getLogger(__name__)

# Stripe statuses for which the subscription can be changed in place
MODIFIABLE_STATUSES = {SubscriptionStatus.ACTIVE.value, SubscriptionStatus.TRIALING.value}


def validation_error(message: str) -> ServiceError:
    return ServiceError("VALIDATION_ERROR", 422, message)


def not_found(message: str) -> ServiceError:
    return ServiceError("NOT_FOUND", 404, message)


def describe_promo(promo) -> str:
    """Human-readable summary, e.g. "20% off for 3 months"."""
    if promo.discount_type == "free_months":
        months = promo.discount_value
        return f"{months} month{'s' if months != 1 else ''} free"

    if promo.discount_type == "percent_off":
        amount = f"{promo.discount_value}% off"
    else:
        amount = f"${promo.discount_value / 100:.2f} off"

    if promo.duration == "forever":
        return f"{amount} forever"
    if promo.duration == "repeating" and promo.duration_months:
        return f"{amount} for {promo.duration_months} months"
    return f"{amount} your first payment"


class BillingService:
    """
    User-facing billing operations behind the /api/billing routes.

    Plan changes only talk to Stripe; local plan and subscription state is
    written by the webhook dispatcher once Stripe confirms the change.
    """

    def __init__(self, session, gateway, plan_map):
        self.session = session
        self.gateway = gateway
        self.plan_map = plan_map
        self.billing = BillingQueries(session)
        self.users = UserQueries(session)
        self.promos = PromoQueries(session)

    # ---- helpers ----

    def _get_user(self, user_id: str):
        user = self.users.get_by_id(user_id)
        if user is None:
            raise not_found("User not found")
        return user

    def _paid_price_id(self, plan: str) -> str:
        tier = parse_plan(plan)
        price_id = self.plan_map.price_id_from_plan_code(tier.value) if tier in PAID_TIERS else None
        if not price_id:
            raise validation_error(f"Invalid plan: {plan}")
        return price_id

    def _ensure_customer(self, user) -> str:
        customer_id = self.gateway.ensure_customer(user.email, user.id, user.stripe_customer_id)
        if not user.stripe_customer_id:
            with unit_of_work(self.session):
                self.users.update_profile(user.id, stripe_customer_id=customer_id)
        elif customer_id != user.stripe_customer_id:
            logger.warning(
                "Stripe issued a new customer for a user with a stored customer id",
                extra={"user_id": user.id, "stored_customer_id": user.stripe_customer_id, "customer_id": customer_id},
            )
        return customer_id

    def _usable_promo(self, code: str):
        promo = self.promos.get_by_code(code)
        if promo is None:
            raise not_found("Promo code not found")
        if not promo.active:
            raise validation_error("Promo code is no longer active")
        if promo.is_expired():
            raise validation_error("Promo code has expired")
        if promo.is_exhausted():
            raise validation_error("Promo code has reached its redemption limit")
        return promo

    # ---- plan changes ----

    def checkout(
        self,
        user_id: str,
        plan: str,
        success_url: str,
        cancel_url: str,
        promo_code: Optional[str] = None,
    ) -> dict:
        price_id = self._paid_price_id(plan)
        user = self._get_user(user_id)

        promotion_code_id = None
        if promo_code:
            promotion_code_id = self._usable_promo(promo_code.strip()).stripe_promotion_code_id

        customer_id = self._ensure_customer(user)
        session = self.gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            user_id=user.id,
            plan_code=plan,
            success_url=success_url,
            cancel_url=cancel_url,
            promotion_code_id=promotion_code_id,
        )
        return {"sessionId": session.session_id, "url": session.url}

    def upgrade(self, user_id: str, plan: str, success_url: str, cancel_url: str) -> dict:
        price_id = self._paid_price_id(plan)
        user = self._get_user(user_id)
        if not is_upgrade(user.plan, plan):
            raise validation_error(f"Cannot upgrade from {user.plan} to {plan}")

        upgrade_from = None
        current = self.billing.get_active_subscription(user.id)
        if current is not None and current.stripe_subscription_id:
            remote = self.gateway.get_subscription(current.stripe_subscription_id)
            if remote.status in MODIFIABLE_STATUSES and remote.first_item:
                self.gateway.upgrade_subscription_price(remote.id, remote.first_item.id, price_id)
                logger.info(
                    "Upgraded subscription in place",
                    extra={"user_id": user.id, "subscription_id": remote.id, "target_plan": plan},
                )
                return {"targetPlan": plan, "method": "proration"}
            upgrade_from = current.stripe_subscription_id

        customer_id = self._ensure_customer(user)
        session = self.gateway.create_checkout_session(
            customer_id=customer_id,
            price_id=price_id,
            user_id=user.id,
            plan_code=plan,
            success_url=success_url,
            cancel_url=cancel_url,
            upgrade_from_subscription_id=upgrade_from,
        )
        return {
            "targetPlan": plan,
            "method": "checkout",
            "sessionId": session.session_id,
            "url": session.url,
        }

    def downgrade(self, user_id: str, plan: str) -> dict:
        target = parse_plan(plan)
        if target is None:
            raise validation_error(f"Invalid plan: {plan}")
        user = self._get_user(user_id)
        if not is_downgrade(user.plan, target.value):
            raise validation_error(f"Cannot downgrade from {user.plan} to {plan}")

        current = self.billing.get_active_subscription(user.id)
        if current is None or not current.stripe_subscription_id:
            raise validation_error("No active subscription")

        if target == PlanTier.FREE:
            self.gateway.cancel_at_period_end(current.stripe_subscription_id)
            with unit_of_work(self.session):
                self.billing.mark_cancel_at_period_end(current.stripe_subscription_id)
            return {"targetPlan": target.value, "method": "cancel_at_period_end"}

        price_id = self._paid_price_id(target.value)
        remote = self.gateway.get_subscription(current.stripe_subscription_id)
        if remote.first_item is None:
            raise validation_error("Subscription has no items to change")
        self.gateway.change_subscription_price(remote.id, remote.first_item.id, price_id, NO_PRORATION)
        return {"targetPlan": target.value, "method": "price_change"}

    def cancel(self, user_id: str) -> dict:
        current = self.billing.get_active_subscription(user_id)
        if current is None or not current.stripe_subscription_id:
            raise validation_error("No active subscription")
        self.gateway.cancel_at_period_end(current.stripe_subscription_id)
        with unit_of_work(self.session):
            self.billing.mark_cancel_at_period_end(current.stripe_subscription_id)
        return {"canceled": True}

    def portal(self, user_id: str, return_url: str) -> dict:
        user = self.users.get_by_id(user_id)
        if user is None or not user.stripe_customer_id:
            raise validation_error("No active subscription found")
        return {"url": self.gateway.create_portal_session(user.stripe_customer_id, return_url)}

    # ---- read side ----

    def validate_promo(self, code: str) -> dict:
        promo = self._usable_promo(code)
        return {**promo.to_dict(), "valid": True, "description": describe_promo(promo)}

    def get_usage(self, user_id: str) -> dict:
        user = self._get_user(user_id)
        limits = get_plan_limits(user.plan)
        return {
            "plan": user.plan,
            "crawlCreditsRemaining": user.crawl_credits_remaining,
            "crawlCreditsTotal": limits["crawls_per_month"],
            "maxPagesPerCrawl": limits["pages_per_crawl"],
            "maxDepth": limits["max_crawl_depth"],
            "maxProjects": limits["projects"],
        }

    def get_subscription(self, user_id: str) -> Optional[dict]:
        subscription = self.billing.get_active_subscription(user_id)
        return subscription.to_dict() if subscription else None

    def list_payments(self, user_id: str) -> List[dict]:
        return [payment.to_dict() for payment in self.billing.list_payments(user_id)]
