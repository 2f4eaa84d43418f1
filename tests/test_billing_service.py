"""
Unit tests for the Stripe billing backend (Stripe API calls are patched)
"""
from types import SimpleNamespace

import pytest
import stripe

from services.billing_service import StripeBillingBackend


@pytest.fixture
def stripe_calls(monkeypatch):
    calls = []

    def record(name, result=None):
        def fake(*args, **kwargs):
            calls.append((name, args, kwargs))
            return result
        return fake

    monkeypatch.setattr(stripe.Customer, "list", record("Customer.list", SimpleNamespace(data=[])))
    monkeypatch.setattr(stripe.Customer, "create", record("Customer.create", SimpleNamespace(id="cus_1")))
    monkeypatch.setattr(stripe.Customer, "modify", record("Customer.modify"))
    monkeypatch.setattr(stripe.PaymentMethod, "attach", record("PaymentMethod.attach"))
    monkeypatch.setattr(
        stripe.Subscription,
        "create",
        record("Subscription.create", SimpleNamespace(id="sub_1", status="active")),
    )
    return calls


@pytest.mark.asyncio
async def test_confirm_payment_success(stripe_calls):
    backend = StripeBillingBackend("sk_test_123")

    confirmation = await backend.confirm_payment("uid-1", "user@example.com", "price_monthly", "pm_card_visa")

    assert confirmation.success is True
    assert confirmation.subscription_id == "sub_1"
    assert confirmation.customer_id == "cus_1"
    assert confirmation.price_id == "price_monthly"
    names = [name for name, _, _ in stripe_calls]
    assert names == ["Customer.list", "Customer.create", "PaymentMethod.attach", "Customer.modify", "Subscription.create"]
    _, _, subscription_kwargs = stripe_calls[-1]
    assert subscription_kwargs["items"] == [{"price": "price_monthly"}]


@pytest.mark.asyncio
async def test_confirm_payment_card_error(stripe_calls, monkeypatch):
    def declined(*args, **kwargs):
        raise stripe.CardError("Your card has expired.", None, "expired_card")

    monkeypatch.setattr(stripe.Subscription, "create", declined)
    backend = StripeBillingBackend("sk_test_123")

    confirmation = await backend.confirm_payment("uid-1", "user@example.com", "price_monthly", "pm_card_visa")

    assert confirmation.success is False
    assert confirmation.error_code == "expired_card"


@pytest.mark.asyncio
async def test_incomplete_subscription_is_not_confirmed(stripe_calls, monkeypatch):
    monkeypatch.setattr(stripe.Subscription, "create", lambda **kwargs: SimpleNamespace(id="sub_2", status="incomplete"))
    backend = StripeBillingBackend("sk_test_123")

    confirmation = await backend.confirm_payment("uid-1", None, "price_monthly", "pm_card_visa")

    assert confirmation.success is False
    assert confirmation.error_code == "card_declined"


@pytest.mark.asyncio
async def test_unconfigured_backend_fails_without_calling_stripe(stripe_calls):
    backend = StripeBillingBackend(None)

    confirmation = await backend.confirm_payment("uid-1", "user@example.com", "price_monthly", "pm_card_visa")
    assert confirmation.success is False
    assert stripe_calls == []

    no_price = await StripeBillingBackend("sk_test_123").confirm_payment("uid-1", None, None, "pm_card_visa")
    assert no_price.success is False
    assert stripe_calls == []
