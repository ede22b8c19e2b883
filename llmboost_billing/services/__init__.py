from .billing_service import BillingService
from .stripe_gateway import CheckoutSession, StripeGateway

__all__ = ["BillingService", "CheckoutSession", "StripeGateway"]
