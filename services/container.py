"""
Service wiring: settings -> gateway -> identity provider -> store -> managers -> router.

Every service is constructor-injected; tests build a container with fakes.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from config.settings import Settings
from models.principal import DeviceMetadata
from services.auth_store import AuthStateStore
from services.billing_service import BillingBackend, StripeBillingBackend
from services.deep_link_router import DeepLinkRouter
from services.identity_provider import FirebaseIdentityProvider, IdentityProviderAdapter
from services.navigation import NavigationSurface, RecordingNavigationSurface
from services.persistence_gateway import PersistenceGateway, build_persistence_gateway
from services.referral_client import CallableReferralBackend, ReferralBackend, ReferralClient
from services.subscription_manager import SubscriptionLifecycleManager, build_plan_catalogue

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    gateway: PersistenceGateway
    identity_provider: IdentityProviderAdapter
    store: AuthStateStore
    subscriptions: SubscriptionLifecycleManager
    navigation: NavigationSurface
    deep_links: DeepLinkRouter
    referrals: ReferralClient

    async def start(self, initial_url: Optional[str] = None) -> None:
        await self.store.initialize()
        await self.deep_links.start(initial_url)

    async def close(self) -> None:
        self.deep_links.stop()
        self.store.shutdown()
        for service in (self.identity_provider, self.referrals.backend):
            aclose = getattr(service, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception as e:
                    logger.warning(f"⚠️ Failed to close {type(service).__name__}: {e}")


def build_container(
    settings: Settings,
    session_factory: Optional[async_sessionmaker] = None,
    gateway: Optional[PersistenceGateway] = None,
    identity_provider: Optional[IdentityProviderAdapter] = None,
    billing: Optional[BillingBackend] = None,
    referral_backend: Optional[ReferralBackend] = None,
    navigation: Optional[NavigationSurface] = None,
) -> ServiceContainer:
    gateway = gateway or build_persistence_gateway(settings, session_factory)
    identity_provider = identity_provider or FirebaseIdentityProvider(
        api_key=settings.identity_api_key,
        base_url=settings.identity_base_url,
        token_url=settings.identity_token_url,
    )
    store = AuthStateStore(
        identity_provider,
        gateway,
        DeviceMetadata(platform=settings.app_platform, app_version=settings.app_version),
    )
    subscriptions = SubscriptionLifecycleManager(
        store,
        billing or StripeBillingBackend(settings.stripe_secret_key),
        build_plan_catalogue(
            settings.stripe_price_monthly,
            settings.stripe_price_quarterly,
            settings.stripe_price_yearly,
        ),
    )
    navigation = navigation or RecordingNavigationSurface()
    deep_links = DeepLinkRouter(
        store,
        gateway,
        navigation,
        scheme=settings.deep_link_scheme,
        domains=settings.deep_link_domain_list,
    )
    referrals = ReferralClient(
        identity_provider,
        gateway,
        referral_backend or CallableReferralBackend(settings.referral_functions_url),
        platform=settings.app_platform,
        app_version=settings.app_version,
    )
    return ServiceContainer(
        gateway=gateway,
        identity_provider=identity_provider,
        store=store,
        subscriptions=subscriptions,
        navigation=navigation,
        deep_links=deep_links,
        referrals=referrals,
    )
