"""
Lugha Chat - FastAPI application entry point.

A multilingual chat service for Kenyan languages with:
- Real-time message relay over WebSocket (/ws)
- AI replies with deterministic fallbacks when the model is unavailable
- In-memory or SQL conversation storage
- Session auth, uploads and admin configuration endpoints
- Security hardening (CORS, headers, rate limiting)
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lugha.api import ws
from lugha.api.v1.routes import api_router
from lugha.core.config import settings
from lugha.services.ai_service import AIResponseService
from lugha.services.database import build_store
from lugha.services.rate_limiter import rate_limit_middleware
from lugha.services.redis_cache import redis_cache
from lugha.services.relay import MessageRelay, SubscriptionRegistry
from lugha.services.store import ChatStore, StoreError

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("lugha")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
    - Connect the conversation store (creates tables / seeds languages for SQL)
    - Connect Redis when rate limiting is enabled

    Shutdown:
    - Close AI clients, Redis and the store
    """
    logger.info("Starting up %s...", settings.PROJECT_NAME)
    store: ChatStore = app.state.store

    if await store.connect():
        logger.info("Conversation store ready (%s)", type(store).__name__)
    else:
        logger.error("Conversation store unavailable - storage operations will fail with 503")

    if settings.ENABLE_RATE_LIMITING and not redis_cache.is_available:
        if not await redis_cache.connect():
            logger.error("Rate limiting enabled but Redis is unavailable")

    if not settings.GEMINI_API_KEY:
        logger.info("GEMINI_API_KEY not set - replies use a stored %s key or fallbacks", settings.AI_PROVIDER)
    if settings.RELAY_BROADCAST:
        logger.info("Relay fan-out ENABLED")
    if settings.REQUIRE_SOCKET_AUTH:
        logger.info("WebSocket authentication REQUIRED")

    yield

    logger.info("Shutting down...")
    await app.state.ai_service.close()
    await redis_cache.close()
    await store.close()
    logger.info("Shutdown complete")


def create_app(store: ChatStore | None = None, ai_service: AIResponseService | None = None) -> FastAPI:
    """
    Build the application.

    Args:
        store: Conversation store; defaults to build_store() (SQL when DATABASE_URL is set).
        ai_service: Reply generator; defaults to an AIResponseService on the same store.
    """
    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Multilingual chat with an AI assistant for Kenyan languages",
        version="0.1.0",
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        lifespan=lifespan,
    )

    app.state.store = store if store is not None else build_store()
    app.state.ai_service = ai_service if ai_service is not None else AIResponseService(app.state.store)
    app.state.relay = MessageRelay(
        app.state.store,
        app.state.ai_service,
        registry=SubscriptionRegistry() if settings.RELAY_BROADCAST else None,
    )

    # =========================================================================
    # Security Middleware
    # =========================================================================

    # CORS Middleware - Configure origins for production!
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
        allow_methods=settings.CORS_ALLOW_METHODS,
        allow_headers=settings.CORS_ALLOW_HEADERS,
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        """
        Add security headers to all responses.

        Headers:
        - X-Content-Type-Options: Prevent MIME type sniffing
        - X-Frame-Options: Prevent clickjacking
        - Referrer-Policy: Control referrer information
        - Cache-Control: Prevent caching of API responses
        """
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if request.url.path.startswith(settings.API_PREFIX):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
            response.headers["Pragma"] = "no-cache"

        return response

    # Rate limiting middleware (applies to API routes only)
    app.middleware("http")(rate_limit_middleware)

    @app.middleware("http")
    async def catch_exceptions_middleware(request: Request, call_next):
        """
        Global exception handler to prevent internal error details leaking.

        Logs full exception for debugging, returns generic error to client.
        """
        try:
            return await call_next(request)
        except Exception:
            logger.exception("Unhandled exception during request to %s", request.url.path)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal server error"},
            )

    # =========================================================================
    # Error handlers
    # =========================================================================

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error("Storage failure during request to %s: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Storage temporarily unavailable"},
        )

    # =========================================================================
    # Routes
    # =========================================================================

    app.include_router(api_router, prefix=settings.API_PREFIX)
    app.include_router(ws.router)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint for container orchestration."""
        return {
            "status": "healthy",
            "store": type(request.app.state.store).__name__,
            "store_connected": request.app.state.store.is_available,
            "ai_key_configured": bool(settings.GEMINI_API_KEY),
            "relay_broadcast": settings.RELAY_BROADCAST,
            "rate_limiting": settings.ENABLE_RATE_LIMITING,
            "redis_connected": redis_cache.is_available,
        }

    return app


app = create_app()


def run() -> None:
    """Serve the app with uvicorn (`lugha-chat` or `python -m lugha.main`)."""
    uvicorn.run("lugha.main:app", host=settings.API_HOST, port=settings.API_PORT, log_level="info")


if __name__ == "__main__":
    run()
