"""
Links Router - deliver deep links to the router and inspect the headless navigation log
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.utils.responses import error_response, success_response
from routers.dependencies import get_container
from services.container import ServiceContainer

logger = logging.getLogger(__name__)

# Create links router
links_router = APIRouter(prefix="/api/links", tags=["links"])


class OpenLinkRequest(BaseModel):
    url: str


def _intent_data(intent):
    return {
        "family": intent.family.value,
        "stack": intent.stack.value,
        "screen": intent.screen.value,
        "params": intent.params,
        "navigate": intent.navigate,
    }


@links_router.post("/open")
async def open_link(request: OpenLinkRequest, container: ServiceContainer = Depends(get_container)):
    """Runtime link event; shares handle_url with the cold-start path"""
    intent = await container.deep_links.handle_url(request.url)
    if intent is None:
        return error_response("invalid_link", message="Link was rejected or could not be parsed")
    return success_response(
        data={**_intent_data(intent), "queued": container.deep_links.pending_count > 0},
        message="Link handled",
    )


@links_router.post("/ready")
async def navigation_ready(container: ServiceContainer = Depends(get_container)):
    mark_ready = getattr(container.navigation, "mark_ready", None)
    if mark_ready is not None:
        mark_ready()
    flushed = container.deep_links.on_navigation_ready()
    return success_response(data={"flushed": flushed}, message="Navigation ready")


@links_router.get("/navigation")
async def get_navigation_log(container: ServiceContainer = Depends(get_container)):
    entries = getattr(container.navigation, "entries", [])
    return success_response(data={
        "entries": entries,
        "pending": container.deep_links.pending_count,
        "ready": container.navigation.is_ready(),
    })


@links_router.post("/pending-referrer/pop")
async def pop_pending_referrer(container: ServiceContainer = Depends(get_container)):
    referrer_id = await container.deep_links.pop_pending_referrer()
    return success_response(data={"referrer_id": referrer_id})
