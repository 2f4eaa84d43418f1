"""
Deep Link Router - turns external URLs into route intents and dispatches them.

Only the configured app scheme and the whitelisted HTTPS domains are accepted.
Intents that arrive before the navigation surface is ready are queued and
flushed, in arrival order, by on_navigation_ready().
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import AsyncIterable, Callable, Deque, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import parse_qs, quote, unquote, urlsplit

from models.auth_state import UserState
from models.deep_link import LinkFamily, RouteIntent, Screen, Stack
from services.auth_store import AuthStateStore
from services.navigation import NavigationSurface
from services.persistence_gateway import PersistenceGateway
from services.route_guard import initial_route, requires_auth_flow

logger = logging.getLogger(__name__)

DEFAULT_SCHEME = "fintrack"


class LinkParseError(ValueError):
    """A recognized link with missing or malformed required parameters"""


def _amount(value: str) -> float:
    amount = float(value)
    if not math.isfinite(amount) or amount < 0:
        raise ValueError(value)
    return amount


@dataclass(frozen=True)
class LinkRoute:
    family: LinkFamily
    pattern: str
    screen: Screen
    navigate: bool = True
    stack: Stack = Stack.AUTH
    converters: Mapping[str, Callable[[str], object]] = field(default_factory=dict)
    # param name -> query string key, for links like invite?ref=<id>
    query_params: Mapping[str, str] = field(default_factory=dict)
    # value used when an optional param is absent
    defaults: Mapping[str, object] = field(default_factory=dict)

    @property
    def segments(self) -> List[str]:
        return self.pattern.split("/")


# Routes sharing a first segment are tried in table order, so the literal
# payment/success and payment/failed forms come before payment/:plan_id.
LINK_ROUTES: Tuple[LinkRoute, ...] = (
    LinkRoute(LinkFamily.WELCOME, "welcome", Screen.WELCOME),
    LinkRoute(LinkFamily.LOGIN, "login", Screen.LOGIN),
    LinkRoute(LinkFamily.REGISTER, "register", Screen.REGISTER),
    LinkRoute(LinkFamily.VERIFY_EMAIL, "verify-email/:email/:token?", Screen.EMAIL_VERIFICATION),
    LinkRoute(LinkFamily.PASSWORD_RESET, "forgot-password/:email?", Screen.FORGOT_PASSWORD),
    LinkRoute(
        LinkFamily.SUBSCRIPTION_PLANS,
        "plans/:reason?/:previous_plan?",
        Screen.SUBSCRIPTION_PLANS,
        defaults={"reason": "new_user"},
    ),
    LinkRoute(LinkFamily.PAYMENT_SUCCESS, "payment/success/:subscription_id", Screen.PAYMENT_SUCCESS, navigate=False),
    LinkRoute(
        LinkFamily.PAYMENT_FAILED,
        "payment/failed/:error_code/:plan_id/:retry_count",
        Screen.PAYMENT_FAILED,
        navigate=False,
        converters={"retry_count": int},
    ),
    LinkRoute(
        LinkFamily.PAYMENT,
        "payment/:plan_id/:amount/:currency",
        Screen.PAYMENT,
        converters={"amount": _amount},
    ),
    LinkRoute(
        LinkFamily.REFERRAL_INVITE,
        "invite/:referrer_id",
        Screen.REGISTER,
        query_params={"referrer_id": "ref"},
    ),
    LinkRoute(LinkFamily.HOME, "home", Screen.HOME, stack=Stack.MAIN),
)


def _match_literals(route: LinkRoute, segments: List[str]) -> bool:
    """Every literal of the pattern must sit at the same position in the path"""
    for index, token in enumerate(route.segments):
        if token.startswith(":"):
            continue
        if index >= len(segments) or segments[index] != token:
            return False
    return True


def _extract_params(route: LinkRoute, segments: List[str], query: Dict[str, List[str]]) -> Dict[str, object]:
    pattern = route.segments
    if len(segments) > len(pattern):
        raise LinkParseError(f"Unexpected trailing segments for {route.family.value}")

    params: Dict[str, object] = {}
    for index, token in enumerate(pattern):
        if not token.startswith(":"):
            continue
        optional = token.endswith("?")
        name = token[1:].rstrip("?")
        value = segments[index] if index < len(segments) and segments[index] else None
        if value is None and name in route.query_params:
            values = query.get(route.query_params[name])
            value = values[0] if values else None
        if value is None:
            if not optional:
                raise LinkParseError(f"Missing required parameter '{name}' for {route.family.value}")
            params[name] = route.defaults.get(name)
            continue
        converter = route.converters.get(name)
        if converter is not None:
            try:
                value = converter(value)
            except (TypeError, ValueError):
                raise LinkParseError(f"Invalid value for '{name}': {value!r}")
        params[name] = value
    return params


class DeepLinkRouter:
    def __init__(
        self,
        store: AuthStateStore,
        gateway: PersistenceGateway,
        navigation: NavigationSurface,
        scheme: str = DEFAULT_SCHEME,
        domains: Iterable[str] = (),
        routes: Tuple[LinkRoute, ...] = LINK_ROUTES,
    ):
        self.store = store
        self.gateway = gateway
        self.navigation = navigation
        self.scheme = scheme.lower()
        self.domains = {d.lower() for d in domains}
        self.routes = routes
        self._pending: Deque[RouteIntent] = deque()
        self._unsubscribe_store = None

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _split(self, url: str) -> Optional[Tuple[List[str], Dict[str, List[str]]]]:
        """Path segments and query of an allowed URL, or None when the origin is not allowed"""
        try:
            parts = urlsplit(url.strip())
        except ValueError:
            return None
        if parts.scheme == self.scheme and parts.netloc:
            raw_path = f"{parts.netloc}{parts.path}"
        elif parts.scheme == "https" and parts.netloc.lower() in self.domains:
            raw_path = parts.path
        else:
            return None
        path = raw_path.lstrip("/")
        if path.endswith("/"):
            path = path[:-1]
        # Empty segments are kept so a missing param cannot shift later ones
        segments = [unquote(s) for s in path.split("/")] if path else []
        return segments, parse_qs(parts.query)

    def is_allowed(self, url: str) -> bool:
        return self._split(url) is not None

    def parse(self, url: str) -> Optional[RouteIntent]:
        """
        Parse an external URL into a RouteIntent.

        Returns None for foreign origins, unknown paths and links whose
        required parameters are missing or malformed.
        """
        split = self._split(url)
        if split is None:
            logger.warning(f"⚠️ Rejected deep link from unknown origin: {url}")
            return None
        segments, query = split

        for route in self.routes:
            if not _match_literals(route, segments):
                continue
            try:
                params = _extract_params(route, segments, query)
            except LinkParseError as e:
                logger.error(f"Aborting deep link {url}: {e}")
                return None
            return RouteIntent(
                family=route.family,
                screen=route.screen,
                params=params,
                url=url,
                navigate=route.navigate,
                stack=route.stack,
            )

        logger.warning(f"⚠️ Unrecognized deep link path: {url}")
        return None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle_url(self, url: str) -> Optional[RouteIntent]:
        """Entry point shared by the cold-start URL and runtime link events"""
        intent = self.parse(url)
        if intent is None:
            return None
        logger.info(f"Handling deep link {intent.family.value}: {intent.params}")

        if intent.family is LinkFamily.REFERRAL_INVITE:
            await self.gateway.set_pending_referrer(intent.params["referrer_id"])

        if not intent.navigate:
            logger.info(f"ℹ️ Acknowledged {intent.family.value} link for {intent.screen.value}")
            return intent

        if self.navigation.is_ready():
            self._navigate(intent)
        else:
            logger.info(f"Navigation not ready, queueing {intent.family.value} link")
            self._pending.append(intent)
        return intent

    def _navigate(self, intent: RouteIntent) -> None:
        if intent.stack is Stack.MAIN and requires_auth_flow(self.store.state.user_state):
            stack, screen = initial_route(self.store.state)
            logger.info(f"ℹ️ {intent.family.value} link needs the main app, sending user to {screen.value}")
            self.navigation.navigate(stack, screen)
            return
        self.navigation.navigate(intent.stack, intent.screen, dict(intent.params))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def on_navigation_ready(self) -> int:
        """Flush intents queued before the surface became ready. Returns how many ran."""
        flushed = 0
        while self._pending and self.navigation.is_ready():
            self._navigate(self._pending.popleft())
            flushed += 1
        if flushed:
            logger.info(f"Flushed {flushed} queued deep link(s)")
        return flushed

    async def start(self, initial_url: Optional[str] = None) -> Optional[RouteIntent]:
        """Attach to the store and handle the URL the app was cold-started with"""
        if self._unsubscribe_store is None:
            self._unsubscribe_store = self.store.on_user_state_change(self._reset_navigation)
        if initial_url:
            return await self.handle_url(initial_url)
        return None

    async def listen(self, urls: AsyncIterable[str]) -> None:
        """Consume runtime link events until the source is exhausted"""
        async for url in urls:
            try:
                await self.handle_url(url)
            except Exception as e:
                logger.error(f"Deep link handler failed for {url}: {e}", exc_info=True)

    def stop(self) -> None:
        if self._unsubscribe_store is not None:
            self._unsubscribe_store()
            self._unsubscribe_store = None

    def initial_route(self) -> Tuple[Stack, Screen]:
        return initial_route(self.store.state)

    def _reset_navigation(self, user_state: UserState) -> None:
        if not self.navigation.is_ready():
            return
        stack, screen = initial_route(self.store.state)
        self.navigation.reset(stack, screen)

    async def pop_pending_referrer(self) -> Optional[str]:
        """Return the referrer captured from an invite link and forget it"""
        referrer_id = await self.gateway.get_pending_referrer()
        if referrer_id is not None:
            await self.gateway.clear_pending_referrer()
        return referrer_id

    # ------------------------------------------------------------------
    # Link builders
    # ------------------------------------------------------------------

    def build_verify_email_link(self, email: str, token: Optional[str] = None) -> str:
        return build_verify_email_link(email, token, scheme=self.scheme)

    def build_password_reset_link(self, email: Optional[str] = None) -> str:
        return build_password_reset_link(email, scheme=self.scheme)

    def build_payment_success_link(self, subscription_id: str) -> str:
        return build_payment_success_link(subscription_id, scheme=self.scheme)

    def build_payment_failed_link(self, error_code: str, plan_id: str, retry_count: int) -> str:
        return build_payment_failed_link(error_code, plan_id, retry_count, scheme=self.scheme)

    def build_invite_link(self, referrer_id: str) -> str:
        return build_invite_link(referrer_id, scheme=self.scheme)

    def build_plans_link(self, reason: Optional[str] = None, previous_plan: Optional[str] = None) -> str:
        return build_plans_link(reason, previous_plan, scheme=self.scheme)

    def build_payment_link(self, plan_id: str, amount: float, currency: str) -> str:
        return build_payment_link(plan_id, amount, currency, scheme=self.scheme)

    def build_home_link(self) -> str:
        return build_home_link(scheme=self.scheme)


def _segment(value) -> str:
    return quote(str(value), safe="")


def build_verify_email_link(email: str, token: Optional[str] = None, scheme: str = DEFAULT_SCHEME) -> str:
    token_part = f"/{_segment(token)}" if token else ""
    return f"{scheme}://verify-email/{_segment(email)}{token_part}"


def build_password_reset_link(email: Optional[str] = None, scheme: str = DEFAULT_SCHEME) -> str:
    if not email:
        return f"{scheme}://forgot-password"
    return f"{scheme}://forgot-password/{_segment(email)}"


def build_payment_success_link(subscription_id: str, scheme: str = DEFAULT_SCHEME) -> str:
    return f"{scheme}://payment/success/{_segment(subscription_id)}"


def build_payment_failed_link(error_code: str, plan_id: str, retry_count: int, scheme: str = DEFAULT_SCHEME) -> str:
    return f"{scheme}://payment/failed/{_segment(error_code)}/{_segment(plan_id)}/{int(retry_count)}"


def build_invite_link(referrer_id: str, scheme: str = DEFAULT_SCHEME) -> str:
    return f"{scheme}://invite/{_segment(referrer_id)}"


def build_plans_link(
    reason: Optional[str] = None,
    previous_plan: Optional[str] = None,
    scheme: str = DEFAULT_SCHEME,
) -> str:
    """previous_plan is only encoded together with a reason"""
    link = f"{scheme}://plans"
    if reason:
        link += f"/{_segment(reason)}"
        if previous_plan:
            link += f"/{_segment(previous_plan)}"
    return link


def build_payment_link(plan_id: str, amount: float, currency: str, scheme: str = DEFAULT_SCHEME) -> str:
    amount_text = f"{float(amount):f}".rstrip("0").rstrip(".") or "0"
    return f"{scheme}://payment/{_segment(plan_id)}/{amount_text}/{_segment(currency)}"


def build_home_link(scheme: str = DEFAULT_SCHEME) -> str:
    return f"{scheme}://home"
