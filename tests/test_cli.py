from datetime import datetime, timedelta, timezone

from llmboost_billing.models import ProcessedStripeEvent
from llmboost_billing.webhooks.idempotency import EventLedger


def test_purge_events_uses_configured_ttl(app, session):
    now = datetime.now(timezone.utc)
    session.add_all(
        [
            ProcessedStripeEvent(event_id="evt_old", event_type="x", processed_at=now - timedelta(days=5)),
            ProcessedStripeEvent(event_id="evt_new", event_type="x", processed_at=now),
        ]
    )
    session.commit()

    result = app.test_cli_runner().invoke(args=["purge-events"])

    assert result.exit_code == 0
    assert "Purged 1" in result.output
    ledger = EventLedger(session)
    assert not ledger.is_processed("evt_old")
    assert ledger.is_processed("evt_new")


def test_purge_events_hours_option(app, session):
    session.add(
        ProcessedStripeEvent(
            event_id="evt_recent",
            event_type="x",
            processed_at=datetime.now(timezone.utc) - timedelta(hours=2),
        )
    )
    session.commit()

    result = app.test_cli_runner().invoke(args=["purge-events", "--hours", "1"])

    assert result.exit_code == 0
    assert not EventLedger(session).is_processed("evt_recent")
