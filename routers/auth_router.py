"""
Auth Router - API endpoints over the auth state store
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.utils.responses import auth_error_response, success_response
from models.auth_error import AuthError
from routers.dependencies import get_container
from services.container import ServiceContainer
from services.route_guard import plan_selection_reason, requires_auth_flow

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])


# Request models
class LoginRequest(BaseModel):
    email: str
    password: str


class RegisterRequest(BaseModel):
    email: str
    password: str
    confirm_password: str
    accept_terms: bool = Field(default=False, description="User accepted the terms and conditions")


class PasswordResetRequest(BaseModel):
    email: str


def _principal_data(principal):
    return principal.model_dump(mode="json") if principal else None


@auth_router.get("/state")
async def get_auth_state(container: ServiceContainer = Depends(get_container)):
    state = container.store.state
    data = state.to_dict()
    data["is_ready"] = state.is_ready
    return success_response(data=data)


@auth_router.post("/login")
async def login(request: LoginRequest, container: ServiceContainer = Depends(get_container)):
    try:
        principal = await container.store.sign_in(request.email, request.password)
    except AuthError as e:
        logger.info(f"Login rejected: {e.code.value}")
        return auth_error_response(e)
    return success_response(
        data={"principal": _principal_data(principal), "user_state": container.store.state.user_state.value},
        message="Signed in",
    )


@auth_router.post("/register")
async def register(request: RegisterRequest, container: ServiceContainer = Depends(get_container)):
    try:
        principal = await container.store.sign_up(
            request.email,
            request.password,
            request.confirm_password,
            request.accept_terms,
        )
    except AuthError as e:
        logger.info(f"Registration rejected: {e.code.value}")
        return auth_error_response(e)
    return success_response(
        data={"principal": _principal_data(principal), "user_state": container.store.state.user_state.value},
        message="Account created",
        status=201,
    )


@auth_router.post("/logout")
async def logout(container: ServiceContainer = Depends(get_container)):
    try:
        await container.store.sign_out()
    except AuthError as e:
        return auth_error_response(e)
    return success_response(data={"user_state": container.store.state.user_state.value}, message="Signed out")


@auth_router.post("/password-reset")
async def password_reset(request: PasswordResetRequest, container: ServiceContainer = Depends(get_container)):
    try:
        await container.store.send_password_reset(request.email)
    except AuthError as e:
        return auth_error_response(e)
    return success_response(message="Password reset email sent")


@auth_router.post("/refresh")
async def refresh_auth_state(container: ServiceContainer = Depends(get_container)):
    state = await container.store.refresh_auth_state()
    return success_response(data=state.to_dict())


@auth_router.delete("/error")
async def clear_error(container: ServiceContainer = Depends(get_container)):
    container.store.clear_error()
    return success_response(message="Error cleared")


@auth_router.get("/route")
async def get_initial_route(container: ServiceContainer = Depends(get_container)):
    """Where the client should land for the current user state"""
    state = container.store.state
    stack, screen = container.deep_links.initial_route()
    return success_response(data={
        "stack": stack.value,
        "screen": screen.value,
        "user_state": state.user_state.value,
        "requires_auth_flow": requires_auth_flow(state.user_state),
        "plan_selection_reason": plan_selection_reason(state.user_state),
        "is_ready": state.is_ready,
    })
