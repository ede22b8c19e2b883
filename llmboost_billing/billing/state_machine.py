from enum import Enum
from typing import Optional


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"


class InvalidStateTransition(Exception):
    pass


# Stripe subscription status -> local status. Anything not listed
# (incomplete, incomplete_expired, paused, ...) means "no status change".
STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "unpaid": SubscriptionStatus.CANCELED,
}

ALLOWED_TRANSITIONS = {
    None: {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING},
    SubscriptionStatus.TRIALING: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
    },
    SubscriptionStatus.ACTIVE: {
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
    },
    SubscriptionStatus.PAST_DUE: {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELED,
    },
    SubscriptionStatus.CANCELED: set(),
}


def map_stripe_status(stripe_status: Optional[str]) -> Optional[SubscriptionStatus]:
    return STRIPE_STATUS_MAP.get(stripe_status)


class BillingStateMachine:
    """
    Local subscription lifecycle:

        (none) -> active|trialing -> {past_due <-> active} -> canceled

    ``canceled`` is terminal. ``cancel_at_period_end`` is an orthogonal flag
    and is not modelled here. Re-applying the current status is always
    allowed so that replayed webhooks stay harmless.
    """

    @staticmethod
    def can_transition(current: Optional[str], target: str) -> bool:
        current_status = SubscriptionStatus(current) if current else None
        target_status = SubscriptionStatus(target)
        if current_status == target_status:
            return True
        return target_status in ALLOWED_TRANSITIONS[current_status]

    @staticmethod
    def assert_transition(current: Optional[str], target: str) -> None:
        if not BillingStateMachine.can_transition(current, target):
            raise InvalidStateTransition(
                f"Cannot move subscription from {current or 'none'} to {target}"
            )
