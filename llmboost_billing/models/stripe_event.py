from llmboost_billing.extensions import db
from llmboost_billing.models.user import utcnow


class ProcessedStripeEvent(db.Model):
    __tablename__ = "processed_stripe_events"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    event_id = db.Column(db.String(255), unique=True, nullable=False, index=True)
    event_type = db.Column(db.String(100), nullable=False)
    processed_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<ProcessedStripeEvent {self.event_id} {self.event_type}>"
