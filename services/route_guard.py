"""
Route guard tables consumed by navigation.

Adding a user state means adding rows here; navigation code reads the tables
and never branches on individual states.
"""
from typing import Optional, Tuple

from models.auth_state import AuthState, UserState
from models.deep_link import Screen, Stack

# States that may enter the main app. Everything else, including states added
# later, stays in the auth flow.
MAIN_APP_STATES = frozenset({UserState.ACTIVE_SUBSCRIBER})

AUTH_ENTRY_SCREENS = {
    UserState.UNREGISTERED: Screen.WELCOME,
    UserState.REGISTERED_NO_SUBSCRIPTION: Screen.SUBSCRIPTION_PLANS,
    UserState.EXPIRED_SUBSCRIBER: Screen.SUBSCRIPTION_PLANS,
    UserState.PAYMENT_FAILED: Screen.SUBSCRIPTION_PLANS,
}
DEFAULT_AUTH_ENTRY_SCREEN = Screen.WELCOME

PLAN_SELECTION_REASONS = {
    UserState.REGISTERED_NO_SUBSCRIPTION: "new_user",
    UserState.EXPIRED_SUBSCRIBER: "expired",
    UserState.PAYMENT_FAILED: "payment_failed",
}


def requires_auth_flow(user_state: UserState) -> bool:
    """Fail closed: only states listed in MAIN_APP_STATES skip the auth flow"""
    return user_state not in MAIN_APP_STATES


def auth_entry_screen(user_state: UserState) -> Screen:
    return AUTH_ENTRY_SCREENS.get(user_state, DEFAULT_AUTH_ENTRY_SCREEN)


def plan_selection_reason(user_state: UserState) -> Optional[str]:
    return PLAN_SELECTION_REASONS.get(user_state)


def initial_route(state: AuthState) -> Tuple[Stack, Screen]:
    """Stack and screen the navigation surface should mount for the given state"""
    if requires_auth_flow(state.user_state):
        return Stack.AUTH, auth_entry_screen(state.user_state)
    return Stack.MAIN, Screen.HOME
