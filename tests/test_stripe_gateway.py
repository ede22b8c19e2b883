from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import stripe

from llmboost_billing.errors import GatewayError
from llmboost_billing.services.stripe_gateway import StripeGateway

API_KEY = "sk_test_mock"


@pytest.fixture
def gateway():
    return StripeGateway(API_KEY, timeout=10)


def missing(resource, resource_id):
    return stripe.InvalidRequestError(
        f"No such {resource}: '{resource_id}'", None, code="resource_missing", http_status=404
    )


def subscription_payload(**overrides):
    payload = {
        "id": "sub_123",
        "object": "subscription",
        "customer": "cus_123",
        "status": "active",
        "items": {"data": [{"id": "si_1", "price": {"id": "price_pro", "currency": "usd"}}]},
        "current_period_start": 1700000000,
        "current_period_end": 1702592000,
        "cancel_at_period_end": False,
        "canceled_at": None,
        "metadata": {"plan_code": "pro"},
    }
    payload.update(overrides)
    return payload


class TestEnsureCustomer:
    def test_without_existing_id_creates_exactly_once(self, gateway):
        with patch("stripe.Customer.retrieve") as retrieve, patch("stripe.Customer.create") as create:
            create.return_value = {"id": "cus_new"}

            customer_id = gateway.ensure_customer("ada@example.com", "user-1")

        assert customer_id == "cus_new"
        retrieve.assert_not_called()
        create.assert_called_once_with(
            api_key=API_KEY, email="ada@example.com", metadata={"user_id": "user-1"}
        )

    def test_with_valid_existing_id_only_retrieves(self, gateway):
        with patch("stripe.Customer.retrieve") as retrieve, patch("stripe.Customer.create") as create:
            retrieve.return_value = {"id": "cus_existing"}

            customer_id = gateway.ensure_customer("ada@example.com", "user-1", "cus_existing")

        assert customer_id == "cus_existing"
        retrieve.assert_called_once_with("cus_existing", api_key=API_KEY)
        create.assert_not_called()

    def test_with_invalid_existing_id_retrieves_then_creates(self, gateway):
        with patch("stripe.Customer.retrieve") as retrieve, patch("stripe.Customer.create") as create:
            retrieve.side_effect = missing("customer", "cus_gone")
            create.return_value = {"id": "cus_new"}

            customer_id = gateway.ensure_customer("ada@example.com", "user-1", "cus_gone")

        assert customer_id == "cus_new"
        assert retrieve.call_count == 1
        assert create.call_count == 1

    def test_deleted_customer_is_replaced(self, gateway):
        with patch("stripe.Customer.retrieve") as retrieve, patch("stripe.Customer.create") as create:
            retrieve.return_value = {"id": "cus_old", "deleted": True}
            create.return_value = {"id": "cus_new"}

            assert gateway.ensure_customer("ada@example.com", "user-1", "cus_old") == "cus_new"

    def test_create_failure_propagates(self, gateway):
        with patch("stripe.Customer.create") as create:
            create.side_effect = stripe.APIConnectionError("Network unreachable")

            with pytest.raises(GatewayError, match="Network unreachable"):
                gateway.ensure_customer("ada@example.com", "user-1")


class TestCheckoutSession:
    def test_builds_subscription_mode_session(self, gateway):
        with patch("stripe.checkout.Session.create") as create:
            create.return_value = {"id": "cs_123", "url": "https://checkout.stripe.com/c/cs_123"}

            session = gateway.create_checkout_session(
                customer_id="cus_123",
                price_id="price_pro",
                user_id="user-1",
                plan_code="pro",
                success_url="https://app.example.com/ok",
                cancel_url="https://app.example.com/cancel",
            )

        assert session.session_id == "cs_123"
        assert session.url == "https://checkout.stripe.com/c/cs_123"
        create.assert_called_once_with(
            api_key=API_KEY,
            mode="subscription",
            customer="cus_123",
            client_reference_id="user-1",
            line_items=[{"price": "price_pro", "quantity": 1}],
            success_url="https://app.example.com/ok",
            cancel_url="https://app.example.com/cancel",
            subscription_data={"metadata": {"plan_code": "pro"}},
        )

    def test_upgrade_and_promotion_are_forwarded(self, gateway):
        with patch("stripe.checkout.Session.create") as create:
            create.return_value = {"id": "cs_123", "url": None}

            gateway.create_checkout_session(
                customer_id="cus_123",
                price_id="price_agency",
                user_id="user-1",
                plan_code="agency",
                success_url="https://app.example.com/ok",
                cancel_url="https://app.example.com/cancel",
                upgrade_from_subscription_id="sub_old",
                promotion_code_id="promo_launch",
            )

        params = create.call_args.kwargs
        assert params["subscription_data"]["metadata"] == {
            "plan_code": "agency",
            "upgrade_from_subscription_id": "sub_old",
        }
        assert params["discounts"] == [{"promotion_code": "promo_launch"}]


def test_portal_session_returns_url(gateway):
    with patch("stripe.billing_portal.Session.create") as create:
        create.return_value = {"url": "https://billing.stripe.com/p/session"}

        url = gateway.create_portal_session("cus_123", "https://app.example.com/settings")

    assert url == "https://billing.stripe.com/p/session"
    create.assert_called_once_with(
        api_key=API_KEY, customer="cus_123", return_url="https://app.example.com/settings"
    )


class TestSubscriptions:
    def test_get_subscription_is_typed(self, gateway):
        with patch("stripe.Subscription.retrieve") as retrieve:
            retrieve.return_value = subscription_payload()

            subscription = gateway.get_subscription("sub_123")

        assert subscription.id == "sub_123"
        assert subscription.status == "active"
        assert subscription.first_price_id == "price_pro"
        assert subscription.first_item.id == "si_1"
        assert subscription.metadata == {"plan_code": "pro"}
        assert subscription.current_period_start == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert subscription.current_period_end == datetime(2023, 12, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_period_falls_back_to_first_item(self, gateway):
        payload = subscription_payload(current_period_start=None, current_period_end=None)
        payload["items"]["data"][0].update(current_period_start=1700000000, current_period_end=1702592000)
        with patch("stripe.Subscription.retrieve") as retrieve:
            retrieve.return_value = payload

            subscription = gateway.get_subscription("sub_123")

        assert subscription.current_period_end == datetime(2023, 12, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_get_subscription_error_carries_provider_message(self, gateway):
        with patch("stripe.Subscription.retrieve") as retrieve:
            retrieve.side_effect = missing("subscription", "sub_nope")

            with pytest.raises(GatewayError) as exc_info:
                gateway.get_subscription("sub_nope")

        assert "No such subscription" in exc_info.value.message
        assert exc_info.value.http_status == 404
        assert exc_info.value.stripe_code == "resource_missing"

    def test_cancel_at_period_end_flags_subscription(self, gateway):
        with patch("stripe.Subscription.modify") as modify:
            modify.return_value = subscription_payload(cancel_at_period_end=True)

            subscription = gateway.cancel_at_period_end("sub_123")

        modify.assert_called_once_with("sub_123", api_key=API_KEY, cancel_at_period_end=True)
        assert subscription.cancel_at_period_end is True

    def test_cancel_immediately_deletes_subscription(self, gateway):
        with patch("stripe.Subscription.cancel") as cancel:
            assert gateway.cancel_immediately("sub_123") is None

        cancel.assert_called_once_with("sub_123", api_key=API_KEY)

    def test_upgrade_prorates(self, gateway):
        with patch("stripe.Subscription.modify") as modify:
            modify.return_value = subscription_payload()

            gateway.upgrade_subscription_price("sub_123", "si_1", "price_agency")

        modify.assert_called_once_with(
            "sub_123",
            api_key=API_KEY,
            items=[{"id": "si_1", "price": "price_agency"}],
            proration_behavior="create_prorations",
        )

    def test_change_price_without_proration(self, gateway):
        with patch("stripe.Subscription.modify") as modify:
            modify.return_value = subscription_payload()

            gateway.change_subscription_price("sub_123", "si_1", "price_starter", "none")

        assert modify.call_args.kwargs["proration_behavior"] == "none"

    def test_provider_errors_are_not_retried(self, gateway):
        with patch("stripe.Subscription.cancel") as cancel:
            cancel.side_effect = stripe.APIError("Internal error", http_status=500)

            with pytest.raises(GatewayError):
                gateway.cancel_immediately("sub_123")

        assert cancel.call_count == 1
        assert stripe.max_network_retries == 0
