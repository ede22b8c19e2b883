from typing import List, Optional

from sqlalchemy import select, update

from llmboost_billing.models import Promo


class PromoQueries:
    def __init__(self, session):
        self.session = session

    def list(self) -> List[Promo]:
        return list(self.session.execute(select(Promo).order_by(Promo.created_at)).scalars())

    def get_by_code(self, code: str) -> Optional[Promo]:
        return self.session.execute(
            select(Promo).where(Promo.code == code.strip().upper())
        ).scalar_one_or_none()

    def get_by_coupon_id(self, stripe_coupon_id: str) -> Optional[Promo]:
        return next((p for p in self.list() if p.stripe_coupon_id == stripe_coupon_id), None)

    def increment_redeemed(self, promo_id: str) -> None:
        self.session.execute(
            update(Promo)
            .where(Promo.id == promo_id)
            .values(times_redeemed=Promo.times_redeemed + 1)
            .execution_options(synchronize_session="fetch")
        )
        self.session.flush()
