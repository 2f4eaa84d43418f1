"""
Subscription Lifecycle Manager - plan catalogue, payment confirmation and
the failed-payment retry policy.
"""

import calendar
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from models.auth_error import AuthError, AuthErrorCode
from models.subscription import Subscription, SubscriptionPlan, SubscriptionStatus
from services.auth_store import AuthStateStore
from services.billing_service import BillingBackend
from services.error_mapping import make_error, map_payment_error

logger = logging.getLogger(__name__)

MAX_PAYMENT_ATTEMPTS = 3
BASE_MONTHLY_PRICE = 12.99


@dataclass(frozen=True)
class PlanInfo:
    plan: SubscriptionPlan
    name: str
    months: int
    price: float
    currency: str = "BGN"
    price_id: Optional[str] = None

    @property
    def monthly_equivalent(self) -> float:
        return round(self.price / self.months, 2)

    @property
    def savings_percentage(self) -> int:
        if self.months == 1:
            return 0
        return round((BASE_MONTHLY_PRICE - self.price / self.months) / BASE_MONTHLY_PRICE * 100)

    def to_dict(self) -> dict:
        return {
            "id": self.plan.value,
            "name": self.name,
            "months": self.months,
            "price": self.price,
            "currency": self.currency,
            "monthly_equivalent": self.monthly_equivalent,
            "savings_percentage": self.savings_percentage,
        }


def build_plan_catalogue(
    monthly_price_id: Optional[str] = None,
    quarterly_price_id: Optional[str] = None,
    yearly_price_id: Optional[str] = None,
) -> Dict[SubscriptionPlan, PlanInfo]:
    return {
        SubscriptionPlan.MONTHLY: PlanInfo(SubscriptionPlan.MONTHLY, "Monthly plan", 1, 12.99, price_id=monthly_price_id),
        SubscriptionPlan.QUARTERLY: PlanInfo(SubscriptionPlan.QUARTERLY, "Quarterly plan", 3, 29.99, price_id=quarterly_price_id),
        SubscriptionPlan.YEARLY: PlanInfo(SubscriptionPlan.YEARLY, "Yearly plan", 12, 99.99, price_id=yearly_price_id),
    }


def add_months(start: datetime, months: int) -> datetime:
    """Calendar-month addition; the day is clamped to the target month's length"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def retry_option(retry_count: int, recoverable: bool = True) -> dict:
    """
    Retry affordance for the failed-payment screen.

    Three attempts in total. The third one (retry_count == 2) is labelled as
    the last; after that, or for unrecoverable errors, the caller sends the
    user back to plan selection.
    """
    can_retry = retry_count < MAX_PAYMENT_ATTEMPTS and recoverable
    is_final_attempt = can_retry and retry_count >= MAX_PAYMENT_ATTEMPTS - 1
    if not can_retry:
        label = "Choose another plan"
    elif is_final_attempt:
        label = "Last attempt"
    else:
        label = f"Try again ({retry_count + 1}/{MAX_PAYMENT_ATTEMPTS})"
    return {
        "can_retry": can_retry,
        "is_final_attempt": is_final_attempt,
        "attempt": retry_count + 1,
        "label": label,
    }


class SubscriptionLifecycleManager:
    """Creates subscriptions through the billing backend and feeds them into the store"""

    def __init__(
        self,
        store: AuthStateStore,
        billing: BillingBackend,
        plans: Optional[Dict[SubscriptionPlan, PlanInfo]] = None,
    ):
        self.store = store
        self.billing = billing
        self.plans = plans or build_plan_catalogue()

    def list_plans(self) -> List[PlanInfo]:
        return list(self.plans.values())

    def get_plan(self, plan_id: str) -> Optional[PlanInfo]:
        try:
            return self.plans.get(SubscriptionPlan(plan_id))
        except ValueError:
            return None

    def _fail(self, error: AuthError) -> AuthError:
        self.store.set_error(error)
        return error

    async def create_subscription(self, principal_id: str, plan_id: str, payment_method_ref: str) -> Subscription:
        """
        Confirm payment and activate the subscription.

        Raises:
            AuthError: USER_NOT_FOUND when principal_id is not the signed-in user,
                UNKNOWN_ERROR for an unknown plan, a payment code when billing fails
        """
        principal = self.store.state.principal
        if principal is None or principal.uid != principal_id:
            raise self._fail(make_error(AuthErrorCode.USER_NOT_FOUND))

        plan = self.get_plan(plan_id)
        if plan is None:
            raise self._fail(make_error(AuthErrorCode.UNKNOWN_ERROR, message="Invalid plan", details={"plan_id": plan_id}))

        logger.info(f"Confirming payment for {principal_id} on {plan.plan.value} plan")
        confirmation = await self.billing.confirm_payment(
            principal_id=principal_id,
            email=principal.email,
            price_id=plan.price_id,
            payment_method_ref=payment_method_ref,
        )
        if not confirmation.success:
            logger.warning(f"⚠️ Payment failed for {principal_id}: {confirmation.error_code}")
            raise self._fail(map_payment_error(confirmation.error_code, confirmation.message))

        # The principal may have changed while billing was in flight
        current = self.store.state.principal
        if current is None or current.uid != principal_id:
            raise self._fail(make_error(AuthErrorCode.USER_NOT_FOUND))

        now = datetime.utcnow()
        subscription = Subscription(
            id=confirmation.subscription_id or f"sub_{uuid.uuid4().hex}",
            user_id=principal_id,
            plan=plan.plan,
            status=SubscriptionStatus.ACTIVE,
            current_period_start=now,
            current_period_end=add_months(now, plan.months),
            billing_customer_id=confirmation.customer_id,
            billing_subscription_id=confirmation.subscription_id,
            price_id=confirmation.price_id or plan.price_id,
            amount=plan.price,
            currency=plan.currency,
            created_at=now,
            updated_at=now,
        )
        # Persist before the state change so a restart never loses a paid subscription
        await self.store.gateway.save_subscription(subscription)
        await self.store.set_subscription(subscription)
        self.store.clear_error()
        logger.info(f"✅ Subscription {subscription.id} active until {subscription.current_period_end.isoformat()}")
        return subscription

    def _not_implemented(self, operation: str) -> AuthError:
        logger.info(f"ℹ️ {operation} requested but not available")
        return self._fail(make_error(AuthErrorCode.SUBSCRIPTION_NOT_IMPLEMENTED, details={"operation": operation}))

    async def cancel_subscription(self) -> None:
        raise self._not_implemented("cancel_subscription")

    async def update_subscription(self, plan_id: str) -> None:
        raise self._not_implemented("update_subscription")

    async def restore_purchases(self) -> None:
        raise self._not_implemented("restore_purchases")
