"""
Subscription Router - plan catalogue, purchase and failed-payment retry policy
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from backend.utils.responses import auth_error_response, success_response
from models.auth_error import AuthError
from routers.dependencies import get_container
from services.container import ServiceContainer
from services.subscription_manager import retry_option

logger = logging.getLogger(__name__)

# Create subscription router
subscription_router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


# Request models
class CreateSubscriptionRequest(BaseModel):
    principal_id: str
    plan_id: str = Field(description="monthly, quarterly or yearly")
    payment_method_ref: str = Field(description="Billing provider payment method id")


class UpdateSubscriptionRequest(BaseModel):
    plan_id: Optional[str] = None


@subscription_router.get("/plans")
async def list_plans(container: ServiceContainer = Depends(get_container)):
    plans = [plan.to_dict() for plan in container.subscriptions.list_plans()]
    return success_response(data={"plans": plans})


@subscription_router.post("")
async def create_subscription(request: CreateSubscriptionRequest, container: ServiceContainer = Depends(get_container)):
    try:
        subscription = await container.subscriptions.create_subscription(
            request.principal_id,
            request.plan_id,
            request.payment_method_ref,
        )
    except AuthError as e:
        return auth_error_response(e)
    return success_response(
        data={
            "subscription": subscription.model_dump(mode="json"),
            "user_state": container.store.state.user_state.value,
        },
        message="Subscription activated",
        status=201,
    )


@subscription_router.delete("")
async def cancel_subscription(container: ServiceContainer = Depends(get_container)):
    try:
        await container.subscriptions.cancel_subscription()
    except AuthError as e:
        return auth_error_response(e)
    return success_response(message="Subscription cancelled")


@subscription_router.put("")
async def update_subscription(request: UpdateSubscriptionRequest, container: ServiceContainer = Depends(get_container)):
    try:
        await container.subscriptions.update_subscription(request.plan_id)
    except AuthError as e:
        return auth_error_response(e)
    return success_response(message="Subscription updated")


@subscription_router.post("/restore")
async def restore_purchases(container: ServiceContainer = Depends(get_container)):
    try:
        await container.subscriptions.restore_purchases()
    except AuthError as e:
        return auth_error_response(e)
    return success_response(message="Purchases restored")


@subscription_router.get("/retry-option")
async def get_retry_option(
    retry_count: int = Query(default=0, ge=0),
    recoverable: bool = Query(default=True),
):
    return success_response(data=retry_option(retry_count, recoverable))
