import uuid
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint

from llmboost_billing.billing.plans import PlanTier, crawl_credits_for
from llmboost_billing.extensions import db


def utcnow():
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = 'users'

    # ========== IDENTIFICATION ==========
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(255), nullable=True)

    # ========== SUBSCRIPTION & BILLING ==========
    plan = db.Column(db.String(20), nullable=False, default=PlanTier.FREE.value)
    stripe_customer_id = db.Column(db.String(255), unique=True, nullable=True)
    stripe_sub_id = db.Column(db.String(255), nullable=True)

    # ========== USAGE ==========
    crawl_credits_remaining = db.Column(
        db.Integer, nullable=False, default=lambda: crawl_credits_for(PlanTier.FREE.value)
    )

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "plan IN ('free', 'starter', 'pro', 'agency')",
            name='valid_user_plan'
        ),
    )

    def __repr__(self):
        return f"<User {self.id} plan={self.plan}>"
