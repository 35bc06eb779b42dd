"""Checkout session creation"""
from types import SimpleNamespace

import pytest
import stripe


@pytest.fixture
def created_sessions(monkeypatch):
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    return calls


def test_creates_subscription_session(client, created_sessions):
    response = client.post("/api/create-checkout-session", json={"userId": "u1", "email": "cook@example.com"})

    assert response.status_code == 200
    assert response.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test_123"}
    kwargs = created_sessions[0]
    assert kwargs["mode"] == "subscription"
    assert kwargs["client_reference_id"] == "u1"
    assert kwargs["metadata"] == {"userId": "u1"}
    assert kwargs["customer_email"] == "cook@example.com"
    assert kwargs["line_items"] == [{"price": "price_premium_monthly", "quantity": 1}]
    assert kwargs["api_key"] == "sk_test_123"
    assert kwargs["success_url"] == "https://recipes.example.com/payment-success?user=u1"
    assert kwargs["cancel_url"] == "https://recipes.example.com/payment-canceled"


def test_user_id_is_escaped_in_success_url(client, created_sessions):
    client.post("/api/create-checkout-session", json={"userId": "a/b c", "email": "cook@example.com"})
    assert created_sessions[0]["success_url"].endswith("?user=a%2Fb%20c")


@pytest.mark.parametrize("body", [{}, {"userId": "u1"}, {"email": "cook@example.com"}, {"userId": "", "email": "x@y.z"}])
def test_missing_fields(client, created_sessions, body):
    response = client.post("/api/create-checkout-session", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "Missing required fields"}
    assert created_sessions == []


def test_stripe_error_returns_500(client, monkeypatch):
    def failing_create(**kwargs):
        raise stripe.StripeError("No such price")

    monkeypatch.setattr(stripe.checkout.Session, "create", failing_create)
    response = client.post("/api/create-checkout-session", json={"userId": "u1", "email": "cook@example.com"})
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to create checkout session"}


def test_missing_price_returns_500(client, created_sessions):
    client.app.state.settings.STRIPE_PREMIUM_PRICE_ID = None
    response = client.post("/api/create-checkout-session", json={"userId": "u1", "email": "cook@example.com"})
    assert response.status_code == 500
    assert created_sessions == []


def test_returning_subscriber_checks_out_as_existing_customer(client, gateway, created_sessions):
    gateway.upsert_merge(
        "u1",
        {"subscription_status": "canceled", "is_premium_active": False},
        {"stripe_customer_id": "cus_1"},
    )

    response = client.post("/api/create-checkout-session", json={"userId": "u1", "email": "cook@example.com"})

    assert response.status_code == 200
    kwargs = created_sessions[0]
    assert kwargs["customer"] == "cus_1"
    assert "customer_email" not in kwargs
    assert kwargs["client_reference_id"] == "u1"


def test_record_without_customer_falls_back_to_email(client, gateway, created_sessions):
    gateway.upsert_merge("u1", {"subscription_status": "none"})

    client.post("/api/create-checkout-session", json={"userId": "u1", "email": "cook@example.com"})

    kwargs = created_sessions[0]
    assert kwargs["customer_email"] == "cook@example.com"
    assert "customer" not in kwargs
