"""
Entitlement Gate Backend
Auth state, subscription lifecycle, deep link routing and referrals behind one API
"""

from contextlib import asynccontextmanager
import logging
import traceback
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

# Import routers
from routers.auth_router import auth_router
from routers.subscription_router import subscription_router
from routers.links_router import links_router
from routers.referral_router import referral_router
from database import AsyncSessionLocal, init_db
from config.settings import settings, LOGS_DIR
from services.container import ServiceContainer, build_container

# ============================================================================
# SHARED UTILITIES
# ============================================================================

# Logging setup - write ALL events to /logs/app.log
LOGS_DIR.mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOGS_DIR / "app.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception: {e}\n{traceback.format_exc()}")
            return JSONResponse(
                status_code=500,
                content={"ok": False, "data": {}, "error": "internal_error", "message": "Internal Server Error"}
            )


# Security headers middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the API. A prebuilt container (tests) skips database setup;
    otherwise services are wired from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = container
        if services is None:
            try:
                await init_db()
                logger.info("✅ Database initialized successfully")
            except Exception as e:
                logger.error(f"❌ Database initialization failed: {e}")
                raise
            services = build_container(settings, session_factory=AsyncSessionLocal)
        app.state.container = services
        await services.start()
        logger.info(f"✅ Auth store ready (user state: {services.store.state.user_state.value})")
        try:
            yield
        finally:
            await services.close()

    app = FastAPI(title="Entitlement Gate", lifespan=lifespan)

    app.add_middleware(UncaughtExceptionMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS MUST be near the bottom
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # INCLUDE ROUTERS
    # ========================================================================
    app.include_router(auth_router)
    app.include_router(subscription_router)
    app.include_router(links_router)
    app.include_router(referral_router)

    @app.get("/api/health")
    async def health():
        return {"ok": True}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
