import uuid

from sqlalchemy.orm import validates

from llmboost_billing.extensions import db
from llmboost_billing.models.user import utcnow


class Promo(db.Model):
    __tablename__ = "promos"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    stripe_coupon_id = db.Column(db.String(255), nullable=False)
    stripe_promotion_code_id = db.Column(db.String(255), nullable=True)
    discount_type = db.Column(db.String(20), nullable=False)  # percent_off, amount_off, free_months
    discount_value = db.Column(db.Integer, nullable=False)
    duration = db.Column(db.String(20), nullable=False)  # once, repeating, forever
    duration_months = db.Column(db.Integer, nullable=True)
    max_redemptions = db.Column(db.Integer, nullable=True)
    times_redeemed = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow, nullable=False)

    @validates('code')
    def validate_code(self, key, code):
        """Store codes upper-cased; lookups match on the normalised form."""
        return code.strip().upper()

    def is_exhausted(self):
        return self.max_redemptions is not None and self.times_redeemed >= self.max_redemptions

    def is_expired(self, now=None):
        if not self.expires_at:
            return False
        now = now or utcnow()
        expires_at = self.expires_at
        # SQLite hands back naive datetimes; all stored values are UTC
        if expires_at.tzinfo is None:
            now = now.replace(tzinfo=None)
        return now >= expires_at

    def to_dict(self):
        return {
            "code": self.code,
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "duration": self.duration,
            "durationMonths": self.duration_months,
        }
