from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update

from llmboost_billing.billing.state_machine import PaymentStatus, SubscriptionStatus
from llmboost_billing.models import Payment, Subscription


class BillingQueries:
    """
    Subscription and payment persistence.

    Methods flush but never commit; the caller owns the transaction.
    Updates keyed by a Stripe subscription id are no-ops when no row matches.
    """

    def __init__(self, session):
        self.session = session

    # ---- subscriptions ----

    def create_subscription(
        self,
        *,
        user_id: str,
        plan_code: str,
        status: str,
        stripe_subscription_id: str,
        stripe_customer_id: Optional[str] = None,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
    ) -> Subscription:
        subscription = Subscription(
            user_id=user_id,
            plan_code=plan_code,
            status=status,
            stripe_subscription_id=stripe_subscription_id,
            stripe_customer_id=stripe_customer_id,
            current_period_start=current_period_start,
            current_period_end=current_period_end,
        )
        self.session.add(subscription)
        self.session.flush()
        return subscription

    def get_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        return self.session.execute(
            select(Subscription).filter_by(stripe_subscription_id=stripe_subscription_id)
        ).scalar_one_or_none()

    def get_active_subscription(self, user_id: str) -> Optional[Subscription]:
        """Most recent non-canceled subscription for the user."""
        return self.session.execute(
            select(Subscription)
            .where(
                Subscription.user_id == user_id,
                Subscription.status != SubscriptionStatus.CANCELED.value,
            )
            .order_by(Subscription.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def cancel_subscription(self, stripe_subscription_id: str, canceled_at: datetime) -> None:
        self._update(
            stripe_subscription_id,
            status=SubscriptionStatus.CANCELED.value,
            canceled_at=canceled_at,
        )

    def update_subscription_status(self, stripe_subscription_id: str, status: str) -> None:
        self._update(stripe_subscription_id, status=SubscriptionStatus(status).value)

    def update_subscription_period(self, stripe_subscription_id: str, start: datetime, end: datetime) -> None:
        self._update(stripe_subscription_id, current_period_start=start, current_period_end=end)

    def mark_cancel_at_period_end(self, stripe_subscription_id: str) -> None:
        self._update(stripe_subscription_id, cancel_at_period_end=True)

    def _update(self, stripe_subscription_id: str, **values) -> None:
        self.session.execute(
            update(Subscription)
            .where(Subscription.stripe_subscription_id == stripe_subscription_id)
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        self.session.flush()

    # ---- payments ----

    def create_payment(
        self,
        *,
        user_id: str,
        subscription_id: Optional[str],
        stripe_invoice_id: str,
        amount_cents: int,
        currency: str = "usd",
        status: str = PaymentStatus.SUCCEEDED.value,
    ) -> Payment:
        payment = Payment(
            user_id=user_id,
            subscription_id=subscription_id,
            stripe_invoice_id=stripe_invoice_id,
            amount_cents=amount_cents,
            currency=currency,
            status=status,
        )
        self.session.add(payment)
        self.session.flush()
        return payment

    def get_payment_by_invoice_id(self, stripe_invoice_id: str) -> Optional[Payment]:
        return self.session.execute(
            select(Payment).filter_by(stripe_invoice_id=stripe_invoice_id)
        ).scalar_one_or_none()

    def list_payments(self, user_id: str) -> List[Payment]:
        return list(
            self.session.execute(
                select(Payment).filter_by(user_id=user_id).order_by(Payment.created_at.desc())
            ).scalars()
        )
