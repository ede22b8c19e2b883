"""Flask CLI commands for database setup and ledger housekeeping"""

from datetime import timedelta

import click
from flask import current_app

from llmboost_billing.extensions import create_tables, db, unit_of_work
from llmboost_billing.webhooks.idempotency import EventLedger


def register_commands(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all database tables"""
        create_tables(current_app)
        click.echo("Database initialized")

    @app.cli.command("purge-events")
    @click.option("--hours", type=int, default=None, help="Keep events newer than this many hours.")
    def purge_events(hours):
        """Delete processed Stripe event ids older than the ledger TTL"""
        ttl_hours = hours if hours is not None else current_app.config["STRIPE_EVENT_LEDGER_TTL_HOURS"]
        with unit_of_work(db.session):
            removed = EventLedger(db.session).purge_older_than(timedelta(hours=ttl_hours))
        click.echo(f"Purged {removed} processed Stripe events older than {ttl_hours}h")
