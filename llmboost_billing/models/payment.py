import uuid

from llmboost_billing.billing.state_machine import PaymentStatus
from llmboost_billing.extensions import db
from llmboost_billing.models.user import utcnow


class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    subscription_id = db.Column(db.String(36), db.ForeignKey("subscriptions.id"), nullable=True, index=True)
    # Idempotency key for invoice.payment_succeeded replays
    stripe_invoice_id = db.Column(db.String(255), unique=True, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="usd")
    status = db.Column(db.String(30), nullable=False, default=PaymentStatus.SUCCEEDED.value)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "amountCents": self.amount_cents,
            "currency": self.currency,
            "status": self.status,
            "stripeInvoiceId": self.stripe_invoice_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
