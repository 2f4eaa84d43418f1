"""
Pytest configuration and fixtures for testing
"""
import asyncio
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config.settings import Settings
from database import Base
from models.auth_error import AuthErrorCode
from models.principal import DeviceMetadata
from models.referral import BackendReply
from services.auth_store import AuthStateStore
from services.billing_service import BillingBackend, PaymentConfirmation
from services.container import build_container
from services.error_mapping import make_error, map_identity_error
from services.identity_provider import IdentityProviderAdapter
from services.navigation import RecordingNavigationSurface
from services.persistence_gateway import MemoryKeyValueStore, PersistenceGateway
from services.referral_client import ReferralBackend

# Create in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


async def settle(rounds: int = 5):
    """Let scheduled identity notifications run"""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_provider_user(uid: str = "uid-1", email: str = "user@example.com", **extra) -> Dict[str, Any]:
    user = {
        "localId": uid,
        "email": email,
        "emailVerified": True,
        "createdAt": "1700000000000",
        "lastLoginAt": "1700000000000",
        "providerUserInfo": [{"providerId": "password"}],
    }
    user.update(extra)
    return user


class FakeIdentityProvider(IdentityProviderAdapter):
    """In-process identity provider with REST-style error codes"""

    def __init__(self):
        super().__init__()
        self.accounts: Dict[str, Dict[str, Any]] = {}
        self.reset_requests: List[str] = []
        self.token_refreshes = 0
        self.fail_with: Optional[Exception] = None

    def add_account(self, email: str, password: str, uid: str = "uid-1") -> Dict[str, Any]:
        user = make_provider_user(uid=uid, email=email)
        self.accounts[email] = {"password": password, "user": user}
        return user

    async def emit(self, user):
        await self._set_current_user(user)

    async def sign_in(self, email, password):
        if self.fail_with is not None:
            raise self.fail_with
        account = self.accounts.get(email)
        if account is None:
            raise map_identity_error("EMAIL_NOT_FOUND")
        if account["password"] != password:
            raise map_identity_error("INVALID_PASSWORD")
        await self._set_current_user(account["user"])
        return account["user"]

    async def sign_up(self, email, password):
        if email in self.accounts:
            raise map_identity_error("EMAIL_EXISTS")
        if len(password) < 6:
            raise map_identity_error("WEAK_PASSWORD : Password should be at least 6 characters")
        user = self.add_account(email, password, uid=f"uid-{len(self.accounts) + 1}")
        await self._set_current_user(user)
        return user

    async def sign_out(self):
        await self._set_current_user(None)

    async def send_password_reset(self, email):
        if email not in self.accounts:
            raise map_identity_error("EMAIL_NOT_FOUND")
        self.reset_requests.append(email)

    async def get_id_token(self, force_refresh=False):
        if self._current_user is None:
            raise make_error(AuthErrorCode.SESSION_REQUIRED)
        if force_refresh:
            self.token_refreshes += 1
        return f"token-{self.token_refreshes}"


class FakeBillingBackend(BillingBackend):
    def __init__(self, confirmation: Optional[PaymentConfirmation] = None):
        self.confirmation = confirmation or PaymentConfirmation(
            success=True,
            subscription_id="sub_test_1",
            customer_id="cus_test_1",
            price_id="price_monthly",
        )
        self.calls: List[Dict[str, Any]] = []

    async def confirm_payment(self, principal_id, email, price_id, payment_method_ref):
        self.calls.append({
            "principal_id": principal_id,
            "email": email,
            "price_id": price_id,
            "payment_method_ref": payment_method_ref,
        })
        return self.confirmation


class FakeReferralBackend(ReferralBackend):
    def __init__(self):
        self.replies: Dict[str, BackendReply] = {}
        self.calls: List[Dict[str, Any]] = []

    async def call(self, name, data, id_token):
        self.calls.append({"name": name, "data": data, "id_token": id_token})
        return self.replies.get(name, BackendReply(success=False, message="not stubbed"))


@pytest.fixture
def test_settings():
    return Settings(
        DATABASE_URL=TEST_DATABASE_URL,
        DEEP_LINK_SCHEME="fintrack",
        DEEP_LINK_DOMAINS="fintrack.bg,app.fintrack.bg",
        STORAGE_KEY_PREFIX="@fintrack_",
        STRIPE_PRICE_MONTHLY="price_monthly",
        STRIPE_PRICE_QUARTERLY="price_quarterly",
        STRIPE_PRICE_YEARLY="price_yearly",
    )


@pytest.fixture
async def session_factory():
    """
    Isolated in-memory SQLite database per test, with the key/value table created.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        # Import models to ensure they're registered with Base
        from database_models import KeyValueRecord  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def memory_store():
    return MemoryKeyValueStore()


@pytest.fixture
def gateway(memory_store):
    return PersistenceGateway(primary=memory_store, key_prefix="@fintrack_")


@pytest.fixture
def identity_provider():
    return FakeIdentityProvider()


@pytest.fixture
def billing():
    return FakeBillingBackend()


@pytest.fixture
def referral_backend():
    return FakeReferralBackend()


@pytest.fixture
def navigation():
    return RecordingNavigationSurface()


@pytest.fixture
def store(identity_provider, gateway):
    return AuthStateStore(identity_provider, gateway, DeviceMetadata(platform="android", app_version="1.0.0"))


@pytest.fixture
def container(test_settings, gateway, identity_provider, billing, referral_backend, navigation):
    return build_container(
        test_settings,
        gateway=gateway,
        identity_provider=identity_provider,
        billing=billing,
        referral_backend=referral_backend,
        navigation=navigation,
    )
