"""
API tests for the auth, subscription, links and referral routers
"""
import pytest
from fastapi.testclient import TestClient

from main import create_app
from models.referral import BackendReply
from services.referral_client import GENERATE_LINK_FUNCTION


@pytest.fixture
def api(container, identity_provider):
    identity_provider.add_account("user@example.com", "secret123", uid="uid-1")
    with TestClient(create_app(container)) as client:
        yield client


def login(api):
    response = api.post("/api/auth/login", json={"email": "user@example.com", "password": "secret123"})
    assert response.status_code == 200
    return response.json()


def test_initial_state_and_route(api):
    state = api.get("/api/auth/state").json()
    assert state["ok"] is True
    assert state["data"]["user_state"] == "unregistered"
    assert state["data"]["is_initialized"] is True

    route = api.get("/api/auth/route").json()["data"]
    assert route["stack"] == "Auth"
    assert route["screen"] == "Welcome"
    assert route["requires_auth_flow"] is True


def test_register_then_plan_selection(api):
    response = api.post("/api/auth/register", json={
        "email": "new@example.com",
        "password": "secret123",
        "confirm_password": "secret123",
        "accept_terms": True,
    })

    assert response.status_code == 201
    assert response.json()["data"]["user_state"] == "registered_no_subscription"
    route = api.get("/api/auth/route").json()["data"]
    assert route["screen"] == "SubscriptionPlans"
    assert route["plan_selection_reason"] == "new_user"


def test_register_validation_error(api):
    response = api.post("/api/auth/register", json={
        "email": "new@example.com",
        "password": "secret123",
        "confirm_password": "secret124",
        "accept_terms": True,
    })

    body = response.json()
    assert response.status_code == 400
    assert body["ok"] is False
    assert body["error"] == "validation/password-mismatch"


def test_login_wrong_password_sets_store_error(api):
    response = api.post("/api/auth/login", json={"email": "user@example.com", "password": "nope"})

    assert response.status_code == 401
    assert response.json()["error"] == "auth/wrong-password"
    assert api.get("/api/auth/state").json()["data"]["error"]["code"] == "auth/wrong-password"

    api.delete("/api/auth/error")
    assert api.get("/api/auth/state").json()["data"]["error"] is None


def test_purchase_flow_reaches_main_app(api):
    login(api)

    response = api.post("/api/subscriptions", json={
        "principal_id": "uid-1",
        "plan_id": "yearly",
        "payment_method_ref": "pm_card_visa",
    })

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user_state"] == "active_subscriber"
    assert data["subscription"]["status"] == "active"
    route = api.get("/api/auth/route").json()["data"]
    assert (route["stack"], route["screen"]) == ("Main", "Home")

    # Logout keeps the subscription snapshot but leaves the main app
    api.post("/api/auth/logout")
    state = api.get("/api/auth/state").json()["data"]
    assert state["user_state"] == "unregistered"
    assert state["subscription"]["plan"] == "yearly"


def test_purchase_requires_principal(api):
    response = api.post("/api/subscriptions", json={
        "principal_id": "uid-1",
        "plan_id": "monthly",
        "payment_method_ref": "pm_card_visa",
    })
    assert response.status_code == 401
    assert response.json()["error"] == "auth/user-not-found"


@pytest.mark.parametrize("method, path", [
    ("delete", "/api/subscriptions"),
    ("put", "/api/subscriptions"),
    ("post", "/api/subscriptions/restore"),
])
def test_unimplemented_subscription_operations(api, method, path):
    kwargs = {"json": {"plan_id": "yearly"}} if method == "put" else {}
    response = getattr(api, method)(path, **kwargs)

    assert response.status_code == 501
    assert response.json()["error"] == "subscription/not-implemented"


def test_plans_and_retry_option(api):
    plans = api.get("/api/subscriptions/plans").json()["data"]["plans"]
    assert [p["id"] for p in plans] == ["monthly", "quarterly", "yearly"]

    final = api.get("/api/subscriptions/retry-option", params={"retry_count": 2}).json()["data"]
    assert final["is_final_attempt"] is True
    exhausted = api.get("/api/subscriptions/retry-option", params={"retry_count": 3}).json()["data"]
    assert exhausted["can_retry"] is False


def test_links_queue_until_ready(api):
    response = api.post("/api/links/open", json={"url": "fintrack://forgot-password/user%40example.com"})
    body = response.json()
    assert body["data"]["screen"] == "ForgotPassword"
    assert body["data"]["params"] == {"email": "user@example.com"}
    assert body["data"]["queued"] is True

    assert api.post("/api/links/ready").json()["data"]["flushed"] == 1
    navigation = api.get("/api/links/navigation").json()["data"]
    assert navigation["ready"] is True
    assert navigation["entries"][-1]["screen"] == "ForgotPassword"


def test_links_reject_foreign_origin(api):
    response = api.post("/api/links/open", json={"url": "https://evil.com/forgot-password/x"})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_link"


def test_invite_link_stores_pending_referrer(api):
    api.post("/api/links/open", json={"url": "https://fintrack.bg/invite?ref=ref-42"})

    assert api.post("/api/links/pending-referrer/pop").json()["data"]["referrer_id"] == "ref-42"
    assert api.post("/api/links/pending-referrer/pop").json()["data"]["referrer_id"] is None


def test_referrals_require_session(api):
    response = api.post("/api/referrals/link")
    assert response.status_code == 401
    assert response.json()["error"] == "session/required"


def test_referral_link_with_session(api, referral_backend):
    referral_backend.replies[GENERATE_LINK_FUNCTION] = BackendReply(
        success=True,
        payload={"referralLink": "https://fintrack.app/invite?ref=uid-1", "referralId": "r-1"},
    )
    login(api)

    data = api.post("/api/referrals/link").json()["data"]

    assert data["referral_id"] == "r-1"
    assert data["url"] == "https://fintrack.app/invite?ref=uid-1"
    assert "https://fintrack.app/invite?ref=uid-1" in data["share_message"]


def test_links_carry_stack_and_reject_shifted_params(api):
    plans = api.post("/api/links/open", json={"url": "fintrack://plans/expired"}).json()["data"]
    assert plans["family"] == "subscription-plans"
    assert plans["stack"] == "Auth"
    assert plans["params"] == {"reason": "expired", "previous_plan": None}

    response = api.post("/api/links/open", json={"url": "fintrack://verify-email//tok123"})
    assert response.status_code == 400
    assert response.json()["error"] == "invalid_link"
