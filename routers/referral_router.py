"""
Referral Router - referral link, reward and stats
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.utils.responses import auth_error_response, success_response
from models.auth_error import AuthError
from routers.dependencies import get_container
from services.container import ServiceContainer

logger = logging.getLogger(__name__)

# Create referral router
referral_router = APIRouter(prefix="/api/referrals", tags=["referrals"])


class ReferralRewardRequest(BaseModel):
    referrer_id: str


@referral_router.post("/link")
async def generate_referral_link(container: ServiceContainer = Depends(get_container)):
    referrals = container.referrals
    try:
        link = await referrals.generate_referral_link()
    except AuthError as e:
        return auth_error_response(e)
    return success_response(data={
        **link.model_dump(),
        "share_message": referrals.share_message(link),
    })


@referral_router.post("/reward")
async def process_referral_reward(request: ReferralRewardRequest, container: ServiceContainer = Depends(get_container)):
    try:
        reply = await container.referrals.process_referral_reward(request.referrer_id)
    except AuthError as e:
        return auth_error_response(e)
    return success_response(data=reply.payload or {}, message=reply.message or "Referral reward granted")


@referral_router.get("/stats")
async def get_referral_stats(container: ServiceContainer = Depends(get_container)):
    try:
        stats = await container.referrals.get_referral_stats()
    except AuthError as e:
        return auth_error_response(e)
    return success_response(data=stats.model_dump(mode="json"))
