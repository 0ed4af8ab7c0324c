import pytest
import stripe

from errors import GatewayFailure
from payments import StripeGateway


def test_missing_key_is_a_gateway_failure():
    with pytest.raises(GatewayFailure, match="not configured"):
        StripeGateway(None).create_payment_intent(100, "usd", {})


def test_creates_intent_with_per_call_key(monkeypatch):
    seen = {}

    def create(**kwargs):
        seen.update(kwargs)
        return stripe.PaymentIntent.construct_from(
            {"id": "pi_123", "client_secret": "pi_123_secret", "amount": kwargs["amount"]}, "sk_test"
        )

    monkeypatch.setattr(stripe.PaymentIntent, "create", create)
    intent = StripeGateway("sk_test").create_payment_intent(4000, "usd", {"user_id": "u1", "cart_id": "c1"})

    assert seen == {"amount": 4000, "currency": "usd", "metadata": {"user_id": "u1", "cart_id": "c1"},
                    "api_key": "sk_test"}
    assert intent.id == "pi_123"
    assert intent.client_secret == "pi_123_secret"
    assert intent.raw["amount"] == 4000


def test_stripe_errors_become_gateway_failures(monkeypatch):
    def create(**kwargs):
        raise stripe.StripeError("card network down")

    monkeypatch.setattr(stripe.PaymentIntent, "create", create)
    with pytest.raises(GatewayFailure):
        StripeGateway("sk_test").create_payment_intent(100, "usd", {})
