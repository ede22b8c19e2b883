"""Management script for database migrations and billing housekeeping"""

import os

from dotenv import load_dotenv
from flask.cli import FlaskGroup

load_dotenv()

from llmboost_billing import create_app


def _create_app():
    return create_app(os.getenv("FLASK_CONFIG"))


# Commands: flask db ... (Flask-Migrate), init-db, purge-events
cli = FlaskGroup(create_app=_create_app)


if __name__ == "__main__":
    cli()
