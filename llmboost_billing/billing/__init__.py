from .plan_map import PlanMap
from .plans import PLAN_LIMITS, PlanTier
from .state_machine import BillingStateMachine, InvalidStateTransition, SubscriptionStatus

__all__ = [
    "PlanMap",
    "PLAN_LIMITS",
    "PlanTier",
    "BillingStateMachine",
    "InvalidStateTransition",
    "SubscriptionStatus",
]
