from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select

from llmboost_billing.models import ProcessedStripeEvent


class EventLedger:
    """Short-lived record of Stripe event ids that have already been applied."""

    def __init__(self, session):
        self.session = session

    def is_processed(self, event_id: str) -> bool:
        return (
            self.session.execute(
                select(ProcessedStripeEvent.id).filter_by(event_id=event_id)
            ).first()
            is not None
        )

    def mark_processed(self, event_id: str, event_type: str) -> None:
        self.session.add(ProcessedStripeEvent(event_id=event_id, event_type=event_type))
        self.session.flush()

    def purge_older_than(self, ttl: timedelta, now: datetime = None) -> int:
        """Delete ledger rows older than ``ttl``; returns the number removed."""
        cutoff = (now or datetime.now(timezone.utc)) - ttl
        result = self.session.execute(
            delete(ProcessedStripeEvent).where(ProcessedStripeEvent.processed_at < cutoff)
        )
        return result.rowcount
