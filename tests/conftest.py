from unittest.mock import Mock

import pytest
from flask_jwt_extended import create_access_token

from llmboost_billing import create_app
from llmboost_billing.extensions import db
from llmboost_billing.models import User
from llmboost_billing.services import StripeGateway
from llmboost_billing.webhooks.security import verify_signature

from factories import fake


@pytest.fixture()
def app():
    """Fresh application and in-memory database for every test"""
    app = create_app("testing")

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def session(app):
    return db.session


@pytest.fixture()
def plan_map(app):
    return app.extensions["plan_map"]


@pytest.fixture()
def gateway(app):
    """Stripe gateway double; webhook signatures are still verified for real"""
    gateway = Mock(spec=StripeGateway)
    gateway.verify_webhook_signature.side_effect = verify_signature
    app.extensions["stripe_gateway"] = gateway
    return gateway


@pytest.fixture()
def user(session):
    user = User(email=fake.unique.email(), name=fake.name())
    session.add(user)
    session.commit()
    return user


@pytest.fixture()
def paid_user(session):
    user = User(
        email=fake.unique.email(),
        name=fake.name(),
        plan="pro",
        stripe_customer_id="cus_existing",
        stripe_sub_id="sub_current",
        crawl_credits_remaining=30,
    )
    session.add(user)
    session.commit()
    return user


@pytest.fixture()
def auth_headers(app, user):
    token = create_access_token(identity=user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def paid_headers(app, paid_user):
    token = create_access_token(identity=paid_user.id)
    return {"Authorization": f"Bearer {token}"}
