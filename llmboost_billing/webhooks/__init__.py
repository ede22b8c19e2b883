from .dispatcher import WebhookDispatcher
from .events import StripeEvent, parse_event
from .idempotency import EventLedger
from .security import verify_signature

__all__ = ["WebhookDispatcher", "StripeEvent", "parse_event", "EventLedger", "verify_signature"]
