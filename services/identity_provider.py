"""
Identity Provider Adapter - boundary to the external identity service.

The adapter owns the session and yields opaque user records (dicts shaped the
way the provider returns them). Everything leaving this module is either an
opaque user, a Principal produced by map_provider_user, or an AuthError.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Union

import httpx

from models.auth_error import AuthErrorCode
from models.principal import AuthProviderTag, DeviceMetadata, Principal
from services.error_mapping import make_error, map_identity_error

logger = logging.getLogger(__name__)

ProviderUser = Mapping[str, Any]
ChangeCallback = Callable[[Optional[ProviderUser]], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]

PROVIDER_TAGS = {
    "password": AuthProviderTag.PASSWORD,
    "google.com": AuthProviderTag.GOOGLE,
    "apple.com": AuthProviderTag.APPLE,
}


def _parse_timestamp(value) -> datetime:
    """Provider timestamps arrive as epoch milliseconds (often as strings)"""
    if value is None:
        return datetime.utcnow()
    if isinstance(value, datetime):
        return value
    try:
        return datetime.utcfromtimestamp(int(value) / 1000)
    except (TypeError, ValueError):
        return datetime.utcnow()


def map_provider_user(raw: Optional[ProviderUser], metadata: Optional[DeviceMetadata] = None) -> Optional[Principal]:
    """Map an opaque provider record into the local Principal shape"""
    if raw is None:
        return None
    provider_infos = raw.get("providerUserInfo") or []
    provider_id = provider_infos[0].get("providerId") if provider_infos else raw.get("providerId", "password")
    return Principal(
        uid=raw.get("localId") or raw["uid"],
        email=raw.get("email"),
        email_verified=bool(raw.get("emailVerified", False)),
        display_name=raw.get("displayName"),
        photo_url=raw.get("photoUrl"),
        provider=PROVIDER_TAGS.get(provider_id, AuthProviderTag.PASSWORD),
        created_at=_parse_timestamp(raw.get("createdAt")),
        last_login_at=_parse_timestamp(raw.get("lastLoginAt")),
        metadata=metadata or DeviceMetadata(),
    )


class IdentityProviderAdapter(ABC):
    """
    Sign-in, sign-up, sign-out, password reset and a change notification
    stream. Subclasses call _set_current_user whenever the session changes.
    """

    def __init__(self):
        self._listeners: List[ChangeCallback] = []
        self._current_user: Optional[ProviderUser] = None
        # Initial deliveries in flight; the loop only keeps weak references
        self._delivery_tasks: Set[asyncio.Task] = set()

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> ProviderUser:
        ...

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> ProviderUser:
        ...

    @abstractmethod
    async def sign_out(self) -> None:
        ...

    @abstractmethod
    async def send_password_reset(self, email: str) -> None:
        ...

    @abstractmethod
    async def get_id_token(self, force_refresh: bool = False) -> str:
        """ID token of the live session. Raises SESSION_REQUIRED when signed out."""
        ...

    def current_user(self) -> Optional[ProviderUser]:
        return self._current_user

    def on_change(self, callback: ChangeCallback) -> Unsubscribe:
        """
        Register a change listener. The listener receives the current user
        once, asynchronously, right after registering, then every change.
        """
        self._listeners.append(callback)
        task = asyncio.get_running_loop().create_task(self._deliver(callback, self._current_user))
        self._delivery_tasks.add(task)
        task.add_done_callback(self._delivery_tasks.discard)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def _set_current_user(self, user: Optional[ProviderUser]) -> None:
        self._current_user = user
        for callback in list(self._listeners):
            await self._deliver(callback, user)

    async def _deliver(self, callback: ChangeCallback, user: Optional[ProviderUser]) -> None:
        if callback not in self._listeners:
            return
        try:
            result = callback(user)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logger.error(f"Identity change listener failed: {e}", exc_info=True)


@dataclass
class IdentitySession:
    id_token: str
    refresh_token: str
    expires_at: datetime


class FirebaseIdentityProvider(IdentityProviderAdapter):
    """
    Identity Toolkit REST adapter. Provider error codes are normalized into
    AuthError before they leave the adapter.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        token_url: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.token_url = token_url
        self.client = client or httpx.AsyncClient(timeout=15.0)
        self._session: Optional[IdentitySession] = None
        if not api_key:
            logger.warning("IDENTITY_API_KEY is not set. Identity provider calls will fail.")

    async def _post(self, url: str, **kwargs) -> Dict[str, Any]:
        params = {"key": self.api_key} if self.api_key else {}
        try:
            response = await self.client.post(url, params=params, **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Identity provider request failed: {e}")
            raise make_error(AuthErrorCode.NETWORK_ERROR, details={"provider_message": str(e)})
        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400:
            message = (body.get("error") or {}).get("message") if isinstance(body, dict) else None
            raise map_identity_error(message, message)
        return body

    async def _account_call(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post(f"{self.base_url}/accounts:{endpoint}", json=payload)

    def _store_session(self, body: Dict[str, Any]) -> None:
        self._session = IdentitySession(
            id_token=body.get("idToken") or body.get("id_token"),
            refresh_token=body.get("refreshToken") or body.get("refresh_token"),
            expires_at=datetime.utcnow() + timedelta(seconds=int(body.get("expiresIn") or body.get("expires_in") or 3600)),
        )

    async def _lookup(self) -> ProviderUser:
        body = await self._account_call("lookup", {"idToken": self._session.id_token})
        users = body.get("users") or []
        if not users:
            raise make_error(AuthErrorCode.USER_NOT_FOUND)
        return users[0]

    async def sign_in(self, email: str, password: str) -> ProviderUser:
        body = await self._account_call(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        self._store_session(body)
        user = await self._lookup()
        logger.info(f"Signed in {user.get('localId')}")
        await self._set_current_user(user)
        return user

    async def sign_up(self, email: str, password: str) -> ProviderUser:
        body = await self._account_call(
            "signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        self._store_session(body)
        user = await self._lookup()
        logger.info(f"Registered {user.get('localId')}")
        await self._set_current_user(user)
        return user

    async def sign_out(self) -> None:
        self._session = None
        await self._set_current_user(None)

    async def send_password_reset(self, email: str) -> None:
        await self._account_call("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})

    async def get_id_token(self, force_refresh: bool = False) -> str:
        if self._session is None:
            raise make_error(AuthErrorCode.SESSION_REQUIRED)
        if force_refresh or datetime.utcnow() >= self._session.expires_at:
            body = await self._post(
                self.token_url,
                data={"grant_type": "refresh_token", "refresh_token": self._session.refresh_token},
            )
            self._store_session(body)
        return self._session.id_token

    async def aclose(self) -> None:
        await self.client.aclose()
