"""
Unit tests for user state resolution and the route guard tables
"""
from datetime import datetime, timedelta

import pytest

from models.auth_state import AuthState, UserState
from models.deep_link import Screen, Stack
from models.principal import Principal
from models.subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from services.route_guard import (
    auth_entry_screen,
    initial_route,
    plan_selection_reason,
    requires_auth_flow,
)
from services.user_state_resolver import resolve


def make_subscription(status: SubscriptionStatus) -> Subscription:
    now = datetime.utcnow()
    return Subscription(
        id="sub_1",
        user_id="uid-1",
        plan=SubscriptionPlan.MONTHLY,
        status=status,
        current_period_start=now,
        current_period_end=now + timedelta(days=30),
    )


PRINCIPAL = Principal(uid="uid-1", email="user@example.com")


@pytest.mark.parametrize("status, expected", [
    (SubscriptionStatus.ACTIVE, UserState.ACTIVE_SUBSCRIBER),
    (SubscriptionStatus.FAILED, UserState.PAYMENT_FAILED),
    (SubscriptionStatus.EXPIRED, UserState.EXPIRED_SUBSCRIBER),
    (SubscriptionStatus.CANCELLED, UserState.EXPIRED_SUBSCRIBER),
    (SubscriptionStatus.PENDING, UserState.EXPIRED_SUBSCRIBER),
])
def test_resolve_by_subscription_status(status, expected):
    assert resolve(PRINCIPAL, make_subscription(status)) is expected


def test_resolve_without_subscription():
    assert resolve(PRINCIPAL, None) is UserState.REGISTERED_NO_SUBSCRIPTION


@pytest.mark.parametrize("status", list(SubscriptionStatus))
def test_no_principal_is_always_unregistered(status):
    """A stale subscription never promotes a signed-out user"""
    assert resolve(None, make_subscription(status)) is UserState.UNREGISTERED
    assert resolve(None, None) is UserState.UNREGISTERED


@pytest.mark.parametrize("user_state, expected", [
    (UserState.UNREGISTERED, True),
    (UserState.REGISTERED_NO_SUBSCRIPTION, True),
    (UserState.EXPIRED_SUBSCRIBER, True),
    (UserState.PAYMENT_FAILED, True),
    (UserState.ACCOUNT_SUSPENDED, True),
    (UserState.ACTIVE_SUBSCRIBER, False),
])
def test_requires_auth_flow(user_state, expected):
    assert requires_auth_flow(user_state) is expected


def test_auth_entry_screens():
    assert auth_entry_screen(UserState.UNREGISTERED) is Screen.WELCOME
    assert auth_entry_screen(UserState.REGISTERED_NO_SUBSCRIPTION) is Screen.SUBSCRIPTION_PLANS
    assert auth_entry_screen(UserState.EXPIRED_SUBSCRIBER) is Screen.SUBSCRIPTION_PLANS
    assert auth_entry_screen(UserState.PAYMENT_FAILED) is Screen.SUBSCRIPTION_PLANS
    # Unknown states fall back to the welcome screen
    assert auth_entry_screen(UserState.ACCOUNT_SUSPENDED) is Screen.WELCOME


def test_plan_selection_reason():
    assert plan_selection_reason(UserState.REGISTERED_NO_SUBSCRIPTION) == "new_user"
    assert plan_selection_reason(UserState.EXPIRED_SUBSCRIBER) == "expired"
    assert plan_selection_reason(UserState.PAYMENT_FAILED) == "payment_failed"
    assert plan_selection_reason(UserState.ACTIVE_SUBSCRIBER) is None


def test_initial_route():
    assert initial_route(AuthState(user_state=UserState.ACTIVE_SUBSCRIBER)) == (Stack.MAIN, Screen.HOME)
    assert initial_route(AuthState()) == (Stack.AUTH, Screen.WELCOME)
    assert initial_route(AuthState(user_state=UserState.PAYMENT_FAILED)) == (Stack.AUTH, Screen.SUBSCRIPTION_PLANS)
