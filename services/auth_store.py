"""
Auth State Store - single dispatch point for identity, entitlement and error state.

The reducer is pure. Side effects (persistence) live in the EFFECTS table and
run after the dispatch that triggers them, reading the store's current state
rather than any captured copy.
"""

import logging
from dataclasses import replace
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from models.auth_error import AuthError
from models.auth_state import INITIAL_STATE, ActionType, AuthAction, AuthState, UserState
from models.principal import DeviceMetadata, Principal
from services.error_mapping import normalize_identity_exception
from services.identity_provider import IdentityProviderAdapter, ProviderUser, map_provider_user
from services.persistence_gateway import PersistenceGateway
from services.user_state_resolver import resolve
from utils.validation import validate_login, validate_registration

logger = logging.getLogger(__name__)

StateListener = Callable[[AuthState, AuthState], None]

# Fields each setter action writes
_FIELD_ACTIONS = {
    ActionType.SET_PRINCIPAL: "principal",
    ActionType.SET_SUBSCRIPTION: "subscription",
    ActionType.SET_USER_STATE: "user_state",
    ActionType.SET_ERROR: "error",
    ActionType.SET_LOADING: "is_loading",
    ActionType.SET_INITIALIZED: "is_initialized",
}


def auth_reducer(state: AuthState, action: AuthAction) -> AuthState:
    """
    Pure transition function. Returns the same object when the action
    changes nothing, so listeners can detect no-ops by identity.
    """
    if action.type in _FIELD_ACTIONS:
        field_name = _FIELD_ACTIONS[action.type]
        current = getattr(state, field_name)
        if current is action.payload or current == action.payload:
            return state
        return replace(state, **{field_name: action.payload})
    if action.type is ActionType.CLEAR_ERROR:
        if state.error is None:
            return state
        return replace(state, error=None)
    if action.type is ActionType.RESET:
        # The store stays wired to the identity provider across a reset
        return replace(INITIAL_STATE, is_initialized=state.is_initialized)
    return state


async def persist_auth_records(state: AuthState, gateway: PersistenceGateway) -> None:
    await gateway.save_auth_records(state.principal, state.subscription)


Effect = Callable[[AuthState, PersistenceGateway], Awaitable[None]]

EFFECTS: Dict[ActionType, Tuple[Effect, ...]] = {
    ActionType.SET_PRINCIPAL: (persist_auth_records,),
    ActionType.SET_SUBSCRIPTION: (persist_auth_records,),
}


class AuthStateStore:
    """
    Holds AuthState and serializes every mutation through dispatch().

    Consumers gate protected routes on state.is_ready
    (initialized and at least one identity signal observed).
    """

    def __init__(
        self,
        identity_provider: IdentityProviderAdapter,
        gateway: PersistenceGateway,
        device_metadata: Optional[DeviceMetadata] = None,
    ):
        self.identity_provider = identity_provider
        self.gateway = gateway
        self.device_metadata = device_metadata or DeviceMetadata()
        self._state = INITIAL_STATE
        self._listeners: List[StateListener] = []
        self._unsubscribe_identity = None
        self._identity_signal_seen = False

    @property
    def state(self) -> AuthState:
        return self._state

    # ------------------------------------------------------------------
    # Dispatch surface
    # ------------------------------------------------------------------

    def dispatch(self, action: AuthAction) -> AuthState:
        previous = self._state
        current = auth_reducer(previous, action)
        if current is previous:
            return current
        self._state = current
        logger.debug(f"{action.type.value} applied")
        self._notify(previous, current)
        if previous.principal != current.principal or previous.subscription != current.subscription:
            self._sync_user_state()
        return self._state

    async def apply(self, action: AuthAction) -> AuthState:
        """Dispatch, then run the effects registered for the action type"""
        self.dispatch(action)
        for effect in EFFECTS.get(action.type, ()):
            try:
                await effect(self._state, self.gateway)
            except Exception as e:
                logger.error(f"Effect {effect.__name__} failed after {action.type.value}: {e}", exc_info=True)
        return self._state

    def subscribe(self, listener: StateListener):
        """Listen to every state change. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def on_user_state_change(self, callback: Callable[[UserState], None]):
        def listener(previous: AuthState, current: AuthState):
            if previous.user_state != current.user_state:
                callback(current.user_state)

        return self.subscribe(listener)

    def _notify(self, previous: AuthState, current: AuthState) -> None:
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception as e:
                logger.error(f"Auth state listener failed: {e}", exc_info=True)

    def _sync_user_state(self) -> None:
        resolved = resolve(self._state.principal, self._state.subscription)
        if resolved != self._state.user_state:
            logger.info(f"User state changed to: {resolved.value}")
            self.dispatch(AuthAction(ActionType.SET_USER_STATE, resolved))

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """
        Wire the store: load the persisted subscription, then subscribe to
        identity changes. The persisted principal is never trusted; the
        identity provider re-establishes it.
        """
        if self._state.is_initialized:
            return
        logger.info("Starting authentication initialization...")
        self.dispatch(AuthAction(ActionType.SET_LOADING, True))

        if self.device_metadata.device_id is None:
            device_id = await self.gateway.get_or_create_device_id()
            self.device_metadata = self.device_metadata.model_copy(update={"device_id": device_id})

        subscription = await self.gateway.load_subscription()
        if subscription is not None:
            logger.info(f"Restored persisted subscription {subscription.id} ({subscription.status.value})")
            self.dispatch(AuthAction(ActionType.SET_SUBSCRIPTION, subscription))

        self._unsubscribe_identity = self.identity_provider.on_change(self._handle_identity_change)
        self.dispatch(AuthAction(ActionType.SET_INITIALIZED, True))
        logger.info("Auth initialization completed")

    async def _handle_identity_change(self, raw: Optional[ProviderUser]) -> None:
        principal = map_provider_user(raw, self.device_metadata)
        await self.apply(AuthAction(ActionType.SET_PRINCIPAL, principal))
        if not self._identity_signal_seen:
            self._identity_signal_seen = True
            self.dispatch(AuthAction(ActionType.SET_LOADING, False))

    def shutdown(self) -> None:
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def _fail(self, exc: BaseException) -> AuthError:
        error = normalize_identity_exception(exc)
        self.dispatch(AuthAction(ActionType.SET_ERROR, error))
        return error

    async def sign_in(self, email: str, password: str) -> Optional[Principal]:
        self.dispatch(AuthAction(ActionType.SET_LOADING, True))
        self.dispatch(AuthAction(ActionType.CLEAR_ERROR))
        try:
            validate_login(email)
            raw = await self.identity_provider.sign_in(email.strip().lower(), password)
        except Exception as e:
            error = self._fail(e)
            if error is e:
                raise
            raise error from e
        finally:
            self.dispatch(AuthAction(ActionType.SET_LOADING, False))
        return self._state.principal or map_provider_user(raw, self.device_metadata)

    async def sign_up(self, email: str, password: str, confirm_password: str, accept_terms: bool) -> Optional[Principal]:
        self.dispatch(AuthAction(ActionType.SET_LOADING, True))
        self.dispatch(AuthAction(ActionType.CLEAR_ERROR))
        try:
            validate_registration(email, password, confirm_password, accept_terms)
            raw = await self.identity_provider.sign_up(email.strip().lower(), password)
        except Exception as e:
            error = self._fail(e)
            if error is e:
                raise
            raise error from e
        finally:
            self.dispatch(AuthAction(ActionType.SET_LOADING, False))
        return self._state.principal or map_provider_user(raw, self.device_metadata)

    async def sign_out(self) -> None:
        """
        Clear the principal. The last subscription snapshot is kept so a
        re-login restores the entitlement without a backend round trip.
        """
        self.dispatch(AuthAction(ActionType.SET_LOADING, True))
        try:
            await self.identity_provider.sign_out()
            await self.apply(AuthAction(ActionType.SET_PRINCIPAL, None))
            self.dispatch(AuthAction(ActionType.CLEAR_ERROR))
        except Exception as e:
            error = self._fail(e)
            if error is e:
                raise
            raise error from e
        finally:
            self.dispatch(AuthAction(ActionType.SET_LOADING, False))

    async def send_password_reset(self, email: str) -> None:
        self.dispatch(AuthAction(ActionType.CLEAR_ERROR))
        try:
            validate_login(email)
            await self.identity_provider.send_password_reset(email.strip().lower())
        except Exception as e:
            error = self._fail(e)
            if error is e:
                raise
            raise error from e
        logger.info("Password reset email requested")

    async def set_subscription(self, subscription) -> AuthState:
        return await self.apply(AuthAction(ActionType.SET_SUBSCRIPTION, subscription))

    async def refresh_auth_state(self) -> AuthState:
        """Re-read the persisted subscription into the store"""
        subscription = await self.gateway.load_subscription()
        if subscription is not None:
            self.dispatch(AuthAction(ActionType.SET_SUBSCRIPTION, subscription))
        return self._state

    def set_error(self, error: AuthError) -> None:
        self.dispatch(AuthAction(ActionType.SET_ERROR, error))

    def clear_error(self) -> None:
        self.dispatch(AuthAction(ActionType.CLEAR_ERROR))

    def get_user_state(self) -> UserState:
        return self._state.user_state

    def can_access_feature(self, feature: str) -> bool:
        return self._state.user_state is UserState.ACTIVE_SUBSCRIBER
