"""
User state resolution - the single pure function that maps identity and
entitlement data to the user-facing state.
"""
from typing import Optional

from models.auth_state import UserState
from models.principal import Principal
from models.subscription import Subscription, SubscriptionStatus

STATUS_TO_USER_STATE = {
    SubscriptionStatus.ACTIVE: UserState.ACTIVE_SUBSCRIBER,
    SubscriptionStatus.FAILED: UserState.PAYMENT_FAILED,
    SubscriptionStatus.EXPIRED: UserState.EXPIRED_SUBSCRIBER,
    SubscriptionStatus.CANCELLED: UserState.EXPIRED_SUBSCRIBER,
    SubscriptionStatus.PENDING: UserState.EXPIRED_SUBSCRIBER,
}


def resolve(principal: Optional[Principal], subscription: Optional[Subscription]) -> UserState:
    """
    Derive the user state.

    - No principal: UNREGISTERED, whatever the subscription says
    - Principal without subscription: REGISTERED_NO_SUBSCRIPTION
    - Otherwise by subscription status; any non-active, non-failed status
      counts as expired
    """
    if principal is None:
        return UserState.UNREGISTERED
    if subscription is None:
        return UserState.REGISTERED_NO_SUBSCRIPTION
    return STATUS_TO_USER_STATE.get(subscription.status, UserState.EXPIRED_SUBSCRIBER)
