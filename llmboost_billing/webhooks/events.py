"""
Typed views over Stripe webhook payloads.

Raw events are parsed once, at the dispatch boundary, into one payload type
per handled event. Handlers never reach into nested dicts themselves.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from llmboost_billing.errors import MalformedEventError

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


def from_unix(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _mapping(value: Any) -> Mapping:
    return value if isinstance(value, Mapping) else {}


def _first(items: Any) -> Mapping:
    data = _mapping(items).get("data") or []
    return _mapping(data[0]) if data else {}


def _object_id(value: Any) -> Optional[str]:
    """Stripe fields may hold either an id string or an expanded object."""
    if isinstance(value, Mapping):
        return value.get("id")
    return value or None


@dataclass(frozen=True)
class StripeEvent:
    """Envelope of an inbound webhook: ``{id, type, created, data: {object}}``."""

    id: str
    type: str
    data_object: Dict[str, Any]
    created: Optional[int] = None
    livemode: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "StripeEvent":
        if not isinstance(payload, Mapping):
            raise MalformedEventError("Webhook payload is not a JSON object")
        event_id = payload.get("id")
        event_type = payload.get("type")
        if not event_id or not event_type:
            raise MalformedEventError("Webhook payload missing id or type")
        data_object = _mapping(payload.get("data")).get("object")
        if not isinstance(data_object, Mapping):
            raise MalformedEventError(f"{event_type} missing data.object")
        return cls(
            id=event_id,
            type=event_type,
            data_object=dict(data_object),
            created=payload.get("created"),
            livemode=bool(payload.get("livemode", False)),
        )


@dataclass(frozen=True)
class SubscriptionItem:
    id: str
    price_id: Optional[str]


@dataclass(frozen=True)
class StripeSubscription:
    id: str
    customer: Optional[str]
    status: Optional[str]
    items: List[SubscriptionItem] = field(default_factory=list)
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_object(cls, obj: Mapping) -> "StripeSubscription":
        raw_items = (_mapping(obj.get("items")).get("data")) or []
        items = [
            SubscriptionItem(id=item.get("id"), price_id=_object_id(item.get("price")))
            for item in raw_items
        ]
        # Newer API versions report the period on the item, not the subscription
        first_item = _mapping(raw_items[0]) if raw_items else {}
        period_start = obj.get("current_period_start") or first_item.get("current_period_start")
        period_end = obj.get("current_period_end") or first_item.get("current_period_end")
        return cls(
            id=obj.get("id"),
            customer=_object_id(obj.get("customer")),
            status=obj.get("status"),
            items=items,
            current_period_start=from_unix(period_start),
            current_period_end=from_unix(period_end),
            cancel_at_period_end=bool(obj.get("cancel_at_period_end", False)),
            canceled_at=from_unix(obj.get("canceled_at")),
            metadata=dict(_mapping(obj.get("metadata"))),
        )

    @property
    def first_item(self) -> Optional[SubscriptionItem]:
        return self.items[0] if self.items else None

    @property
    def first_price_id(self) -> Optional[str]:
        return self.first_item.price_id if self.first_item else None


@dataclass(frozen=True)
class CheckoutSessionCompleted:
    session_id: Optional[str]
    user_id: str
    subscription_id: str
    customer_id: Optional[str]
    coupon_id: Optional[str] = None

    @classmethod
    def from_object(cls, obj: Mapping) -> "CheckoutSessionCompleted":
        user_id = obj.get("client_reference_id")
        if not user_id:
            raise MalformedEventError(f"{CHECKOUT_SESSION_COMPLETED} missing client_reference_id")
        subscription_id = _object_id(obj.get("subscription"))
        if not subscription_id:
            raise MalformedEventError(f"{CHECKOUT_SESSION_COMPLETED} missing subscription")
        return cls(
            session_id=obj.get("id"),
            user_id=user_id,
            subscription_id=subscription_id,
            customer_id=_object_id(obj.get("customer")),
            coupon_id=_coupon_id(obj),
        )


def _coupon_id(session: Mapping) -> Optional[str]:
    discount = _mapping(session.get("discount"))
    coupon = _object_id(discount.get("coupon"))
    if coupon:
        return coupon
    discounts = session.get("discounts") or []
    if discounts:
        return _object_id(_mapping(discounts[0]).get("coupon"))
    return None


def _invoice_subscription_id(invoice: Mapping) -> Optional[str]:
    parent = _mapping(_first(invoice.get("lines")).get("parent"))
    details = _mapping(parent.get("subscription_item_details"))
    return _object_id(details.get("subscription"))


@dataclass(frozen=True)
class InvoicePaymentSucceeded:
    invoice_id: str
    subscription_id: Optional[str]
    amount_paid: int
    currency: str
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    @classmethod
    def from_object(cls, obj: Mapping) -> "InvoicePaymentSucceeded":
        invoice_id = obj.get("id")
        if not invoice_id:
            raise MalformedEventError(f"{INVOICE_PAYMENT_SUCCEEDED} missing invoice id")
        return cls(
            invoice_id=invoice_id,
            subscription_id=_invoice_subscription_id(obj),
            amount_paid=int(obj.get("amount_paid") or 0),
            currency=obj.get("currency") or "usd",
            period_start=from_unix(obj.get("period_start")),
            period_end=from_unix(obj.get("period_end")),
        )


@dataclass(frozen=True)
class InvoicePaymentFailed:
    invoice_id: Optional[str]
    subscription_id: Optional[str]

    @classmethod
    def from_object(cls, obj: Mapping) -> "InvoicePaymentFailed":
        return cls(invoice_id=obj.get("id"), subscription_id=_invoice_subscription_id(obj))


@dataclass(frozen=True)
class SubscriptionUpdated:
    subscription: StripeSubscription

    @classmethod
    def from_object(cls, obj: Mapping) -> "SubscriptionUpdated":
        if not obj.get("id"):
            raise MalformedEventError(f"{SUBSCRIPTION_UPDATED} missing subscription id")
        return cls(subscription=StripeSubscription.from_object(obj))


@dataclass(frozen=True)
class SubscriptionDeleted:
    subscription_id: str

    @classmethod
    def from_object(cls, obj: Mapping) -> "SubscriptionDeleted":
        if not obj.get("id"):
            raise MalformedEventError(f"{SUBSCRIPTION_DELETED} missing subscription id")
        return cls(subscription_id=obj["id"])


EventPayload = Union[
    CheckoutSessionCompleted,
    InvoicePaymentSucceeded,
    InvoicePaymentFailed,
    SubscriptionUpdated,
    SubscriptionDeleted,
]

EVENT_TYPES = {
    CHECKOUT_SESSION_COMPLETED: CheckoutSessionCompleted,
    INVOICE_PAYMENT_SUCCEEDED: InvoicePaymentSucceeded,
    INVOICE_PAYMENT_FAILED: InvoicePaymentFailed,
    SUBSCRIPTION_UPDATED: SubscriptionUpdated,
    SUBSCRIPTION_DELETED: SubscriptionDeleted,
}


def is_handled(event_type: str) -> bool:
    return event_type in EVENT_TYPES


def parse_event(event: StripeEvent) -> Optional[EventPayload]:
    """Typed payload for ``event``, or None when the type is not one we handle."""
    payload_type = EVENT_TYPES.get(event.type)
    if payload_type is None:
        return None
    return payload_type.from_object(event.data_object)
