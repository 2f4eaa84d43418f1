"""
Referral Client - referral link, reward and stats calls against the
server-side referral functions.

Every call needs a live identity session and refreshes the ID token first.
Without a session the client fails closed with SESSION_REQUIRED.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from models.auth_error import AuthError, AuthErrorCode
from models.referral import BackendReply, ReferralLink, ReferralStats
from services.error_mapping import make_error
from services.identity_provider import IdentityProviderAdapter
from services.persistence_gateway import PersistenceGateway

logger = logging.getLogger(__name__)

GENERATE_LINK_FUNCTION = "generateReferralLink"
PROCESS_REWARD_FUNCTION = "processReferralReward"
GET_STATS_FUNCTION = "getReferralStats"


class ReferralBackend(ABC):
    @abstractmethod
    async def call(self, name: str, data: Dict[str, Any], id_token: str) -> BackendReply:
        ...


class CallableReferralBackend(ReferralBackend):
    """
    Callable-function transport: POST {base_url}/{name} with {"data": ...},
    reply {"result": {...}} or {"error": {...}}.
    """

    def __init__(self, base_url: Optional[str], client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.client = client or httpx.AsyncClient(timeout=20.0)
        if not self.base_url:
            logger.warning("REFERRAL_FUNCTIONS_URL is not set. Referral calls will fail.")

    async def call(self, name: str, data: Dict[str, Any], id_token: str) -> BackendReply:
        if not self.base_url:
            return BackendReply(success=False, message="Referral functions are not configured")
        try:
            response = await self.client.post(
                f"{self.base_url}/{name}",
                json={"data": data},
                headers={"Authorization": f"Bearer {id_token}"},
            )
        except httpx.RequestError as e:
            logger.error(f"Referral function {name} unreachable: {e}")
            raise make_error(AuthErrorCode.NETWORK_ERROR, details={"function": name})

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code == 401:
            raise make_error(AuthErrorCode.SESSION_REQUIRED)
        if response.status_code >= 400 or "error" in body:
            error = body.get("error") or {}
            return BackendReply(success=False, message=error.get("message") or f"HTTP {response.status_code}")

        result = dict(body.get("result") or {})
        return BackendReply(
            success=bool(result.pop("success", False)),
            message=result.pop("message", None),
            payload=result,
        )

    async def aclose(self) -> None:
        await self.client.aclose()


def share_message(link: str) -> str:
    return (
        "🎉 Join me on FinTrack!\n"
        "Manage your personal finances with ease.\n"
        f"📱 Download now: {link}\n"
        "If you subscribe, we both get 1 month free! 💰"
    )


class ReferralClient:
    def __init__(
        self,
        identity_provider: IdentityProviderAdapter,
        gateway: PersistenceGateway,
        backend: ReferralBackend,
        platform: str = "android",
        app_version: str = "1.0.0",
    ):
        self.identity_provider = identity_provider
        self.gateway = gateway
        self.backend = backend
        self.platform = platform
        self.app_version = app_version
        self._cached_link: Optional[ReferralLink] = None

    @property
    def cached_link(self) -> Optional[ReferralLink]:
        return self._cached_link

    def clear_cache(self) -> None:
        self._cached_link = None

    @property
    def ip_proxy(self) -> str:
        # Advisory anti-fraud signal; the backend must not trust it
        return f"{self.platform}/{self.app_version}"

    async def _require_session(self) -> str:
        if self.identity_provider.current_user() is None:
            raise make_error(AuthErrorCode.SESSION_REQUIRED)
        try:
            return await self.identity_provider.get_id_token(force_refresh=True)
        except AuthError:
            raise
        except Exception as e:
            logger.error(f"ID token refresh failed: {e}", exc_info=True)
            raise make_error(AuthErrorCode.SESSION_REQUIRED, details={"provider_message": str(e)})

    async def _call(self, name: str, data: Optional[Dict[str, Any]] = None) -> BackendReply:
        id_token = await self._require_session()
        reply = await self.backend.call(name, data or {}, id_token)
        if not reply.success:
            logger.warning(f"⚠️ Referral function {name} rejected: {reply.message}")
            raise make_error(AuthErrorCode.REFERRAL_FAILED, message=reply.message)
        return reply

    async def generate_referral_link(self) -> ReferralLink:
        reply = await self._call(GENERATE_LINK_FUNCTION)
        payload = reply.payload or {}
        if not payload.get("referralLink") or not payload.get("referralId"):
            raise make_error(AuthErrorCode.REFERRAL_FAILED, details={"function": GENERATE_LINK_FUNCTION})
        self._cached_link = ReferralLink(referral_id=payload["referralId"], url=payload["referralLink"])
        logger.info(f"Generated referral link {self._cached_link.referral_id}")
        return self._cached_link

    async def process_referral_reward(self, referrer_id: str) -> BackendReply:
        """
        Ask the backend to grant the referral reward for referrer_id.
        The device id is generated once and persisted.
        """
        device_id = await self.gateway.get_or_create_device_id()
        reply = await self._call(
            PROCESS_REWARD_FUNCTION,
            {"referrerId": referrer_id, "deviceId": device_id, "ipAddress": self.ip_proxy},
        )
        logger.info(f"✅ Referral reward processed for referrer {referrer_id}")
        return reply

    async def get_referral_stats(self) -> ReferralStats:
        reply = await self._call(GET_STATS_FUNCTION)
        stats = (reply.payload or {}).get("stats")
        if stats is None:
            raise make_error(AuthErrorCode.REFERRAL_FAILED, details={"function": GET_STATS_FUNCTION})
        try:
            return ReferralStats.model_validate(stats)
        except ValidationError as e:
            logger.error(f"Malformed referral stats payload: {e}")
            raise make_error(AuthErrorCode.REFERRAL_FAILED, details={"function": GET_STATS_FUNCTION})

    def share_message(self, link: Optional[ReferralLink] = None) -> str:
        link = link or self._cached_link
        if link is None:
            raise make_error(AuthErrorCode.REFERRAL_FAILED, message="Generate a referral link first")
        return share_message(link.url)
