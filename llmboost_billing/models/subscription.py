# subscription.py
import uuid

from sqlalchemy import CheckConstraint, Index

from llmboost_billing.billing.state_machine import SubscriptionStatus
from llmboost_billing.extensions import db
from llmboost_billing.models.user import utcnow


class Subscription(db.Model):
    """
    Local mirror of exactly one Stripe subscription.

    A user may own several historical (canceled) rows; the behaviourally
    current one is the row referenced by ``users.stripe_sub_id``.
    """
    __tablename__ = 'subscriptions'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    plan_code = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value)

    # Stripe IDs
    stripe_subscription_id = db.Column(db.String(255), unique=True, nullable=True)
    stripe_customer_id = db.Column(db.String(255), nullable=True, index=True)

    # Billing period, as reported by Stripe
    current_period_start = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cancellation details
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    user = db.relationship('User', backref=db.backref('subscriptions', lazy='dynamic'))

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'trialing', 'past_due', 'canceled')",
            name='valid_subscription_status'
        ),
        Index('idx_subscriptions_user_status', 'user_id', 'status'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'planCode': self.plan_code,
            'status': self.status,
            'currentPeriodStart': self.current_period_start.isoformat() if self.current_period_start else None,
            'currentPeriodEnd': self.current_period_end.isoformat() if self.current_period_end else None,
            'cancelAtPeriodEnd': self.cancel_at_period_end,
            'canceledAt': self.canceled_at.isoformat() if self.canceled_at else None,
        }

    def __repr__(self):
        return f"<Subscription {self.stripe_subscription_id} {self.status}>"
