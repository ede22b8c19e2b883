"""
Static correlation between Stripe price ids and internal plan codes.

The table is built once from configuration at process start and injected
into whatever needs it, so test and live mode can use different price ids
without code changes. Keeping it in lockstep with the Stripe dashboard is an
operational task; nothing here can verify it.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

from llmboost_billing.billing.plans import PAID_TIERS, PlanTier

# Config keys holding the price id for each paid tier
PRICE_CONFIG_KEYS = {
    PlanTier.STARTER: "STRIPE_PRICE_STARTER",
    PlanTier.PRO: "STRIPE_PRICE_PRO",
    PlanTier.AGENCY: "STRIPE_PRICE_AGENCY",
}


@dataclass(frozen=True)
class PlanMap:
    """Immutable bidirectional price id <-> plan code table."""

    price_to_plan: Mapping[str, str]
    plan_to_price: Mapping[str, str] = field(init=False)

    def __post_init__(self):
        inverse = {}
        for price_id, plan_code in self.price_to_plan.items():
            if plan_code in inverse:
                raise ValueError(
                    f"Plan {plan_code!r} is mapped to more than one price "
                    f"({inverse[plan_code]!r}, {price_id!r})"
                )
            inverse[plan_code] = price_id
        object.__setattr__(self, "price_to_plan", MappingProxyType(dict(self.price_to_plan)))
        object.__setattr__(self, "plan_to_price", MappingProxyType(inverse))

    @classmethod
    def from_config(cls, config: Mapping) -> "PlanMap":
        """Build from a Flask config (or any mapping); blank price ids are skipped."""
        mapping = {}
        for tier in PAID_TIERS:
            price_id = config.get(PRICE_CONFIG_KEYS[tier])
            if not price_id:
                continue
            if price_id in mapping:
                raise ValueError(f"Price {price_id!r} is configured for more than one plan")
            mapping[price_id] = tier.value
        return cls(mapping)

    def plan_code_from_price_id(self, price_id: Optional[str]) -> Optional[str]:
        if not price_id:
            return None
        return self.price_to_plan.get(price_id)

    def price_id_from_plan_code(self, plan_code: Optional[str]) -> Optional[str]:
        if not plan_code:
            return None
        return self.plan_to_price.get(plan_code)

    def __contains__(self, price_id) -> bool:
        return price_id in self.price_to_plan
