from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from models.auth_error import AuthError
from models.principal import Principal
from models.subscription import Subscription


class UserState(str, Enum):
    UNREGISTERED = "unregistered"
    REGISTERED_NO_SUBSCRIPTION = "registered_no_subscription"
    PAYMENT_FAILED = "payment_failed"
    ACTIVE_SUBSCRIBER = "active_subscriber"
    EXPIRED_SUBSCRIBER = "expired_subscriber"
    # Declared for forward compatibility; nothing produces it yet
    ACCOUNT_SUSPENDED = "account_suspended"


class ActionType(str, Enum):
    SET_PRINCIPAL = "SET_PRINCIPAL"
    SET_SUBSCRIPTION = "SET_SUBSCRIPTION"
    SET_USER_STATE = "SET_USER_STATE"
    SET_ERROR = "SET_ERROR"
    SET_LOADING = "SET_LOADING"
    SET_INITIALIZED = "SET_INITIALIZED"
    CLEAR_ERROR = "CLEAR_ERROR"
    RESET = "RESET"


@dataclass(frozen=True)
class AuthAction:
    type: ActionType
    payload: Any = None


@dataclass(frozen=True)
class AuthState:
    principal: Optional[Principal] = None
    subscription: Optional[Subscription] = None
    user_state: UserState = UserState.UNREGISTERED
    is_loading: bool = False
    is_initialized: bool = False
    error: Optional[AuthError] = None

    @property
    def is_ready(self) -> bool:
        """Protected routes may render only once wired and an identity signal arrived"""
        return self.is_initialized and not self.is_loading

    def to_dict(self) -> dict:
        return {
            "principal": self.principal.model_dump(mode="json") if self.principal else None,
            "subscription": self.subscription.model_dump(mode="json") if self.subscription else None,
            "user_state": self.user_state.value,
            "is_loading": self.is_loading,
            "is_initialized": self.is_initialized,
            "error": self.error.to_dict() if self.error else None,
        }


INITIAL_STATE = AuthState()
