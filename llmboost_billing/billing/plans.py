from enum import Enum
from typing import Optional


class PlanTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"
    AGENCY = "agency"


PAID_TIERS = (PlanTier.STARTER, PlanTier.PRO, PlanTier.AGENCY)

# Lowest to highest; drives upgrade/downgrade direction checks
TIER_ORDER = {
    PlanTier.FREE: 0,
    PlanTier.STARTER: 1,
    PlanTier.PRO: 2,
    PlanTier.AGENCY: 3,
}

# -1 means unlimited
PLAN_LIMITS = {
    PlanTier.FREE: {
        "pages_per_crawl": 10,
        "max_crawl_depth": 2,
        "crawls_per_month": 2,
        "projects": 1,
    },
    PlanTier.STARTER: {
        "pages_per_crawl": 100,
        "max_crawl_depth": 3,
        "crawls_per_month": 10,
        "projects": 5,
    },
    PlanTier.PRO: {
        "pages_per_crawl": 500,
        "max_crawl_depth": 5,
        "crawls_per_month": 30,
        "projects": 20,
    },
    PlanTier.AGENCY: {
        "pages_per_crawl": 2000,
        "max_crawl_depth": 10,
        "crawls_per_month": -1,
        "projects": 50,
    },
}


def parse_plan(value: Optional[str]) -> Optional[PlanTier]:
    """Return the PlanTier for ``value``, or None if it is not a plan code."""
    try:
        return PlanTier(value)
    except ValueError:
        return None


def get_plan_limits(plan: str) -> dict:
    return PLAN_LIMITS.get(parse_plan(plan) or PlanTier.FREE)


def crawl_credits_for(plan: str) -> int:
    return get_plan_limits(plan)["crawls_per_month"]


def is_upgrade(current: str, target: str) -> bool:
    return TIER_ORDER[PlanTier(target)] > TIER_ORDER[PlanTier(current)]


def is_downgrade(current: str, target: str) -> bool:
    return TIER_ORDER[PlanTier(target)] < TIER_ORDER[PlanTier(current)]
