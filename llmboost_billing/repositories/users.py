from typing import Optional

from llmboost_billing.billing.plans import crawl_credits_for
from llmboost_billing.models import User

# Columns update_profile is allowed to touch
PROFILE_FIELDS = {"name", "email", "stripe_customer_id"}


class UserQueries:
    def __init__(self, session):
        self.session = session

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self.session.get(User, user_id)

    def update_plan(self, user_id: str, plan: str, stripe_sub_id: Optional[str]) -> Optional[User]:
        """Set plan and current Stripe subscription; crawl credits reset to the plan allowance."""
        user = self.get_by_id(user_id)
        if user is None:
            return None
        user.plan = plan
        user.stripe_sub_id = stripe_sub_id
        user.crawl_credits_remaining = crawl_credits_for(plan)
        self.session.flush()
        return user

    def update_profile(self, user_id: str, **fields) -> Optional[User]:
        unknown = set(fields) - PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update user fields: {', '.join(sorted(unknown))}")
        user = self.get_by_id(user_id)
        if user is None:
            return None
        for key, value in fields.items():
            setattr(user, key, value)
        self.session.flush()
        return user
