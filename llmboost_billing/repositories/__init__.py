from .billing import BillingQueries
from .promos import PromoQueries
from .users import UserQueries

__all__ = ["BillingQueries", "PromoQueries", "UserQueries"]
