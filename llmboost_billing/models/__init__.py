from .user import User
from .subscription import Subscription
from .payment import Payment
from .promo import Promo
from .stripe_event import ProcessedStripeEvent

__all__ = ["User", "Subscription", "Payment", "Promo", "ProcessedStripeEvent"]
