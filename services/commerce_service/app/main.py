"""FastAPI application for the Commerce Service."""

from fastapi import FastAPI
from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from services.commerce_service.routers import (
    admin_orders_router,
    cart_router,
    catalog_router,
    checkout_router,
    orders_router,
)
from slowapi.errors import RateLimitExceeded
from starlette.middleware.sessions import SessionMiddleware


def create_app() -> FastAPI:
    """Create and configure the Commerce Service FastAPI app."""
    settings = get_settings()
    app = FastAPI(
        title="Commerce Service",
        version="0.1.0",
        description="Carts, default variant selection, checkout and orders.",
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    # Guest carts and checkout drafts live in a signed cookie session
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SESSION_SECRET_KEY,
        session_cookie=settings.SESSION_COOKIE_NAME,
        https_only=settings.ENVIRONMENT == "production",
    )

    # Add observability (structured logging + request tracing)
    add_observability_middleware(app)

    # Add global exception handlers for consistent error responses
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "commerce"}

    # Shopper routes (catalog, cart, checkout, orders)
    app.include_router(catalog_router, prefix="/commerce")
    app.include_router(cart_router, prefix="/commerce")
    app.include_router(checkout_router, prefix="/commerce")
    app.include_router(orders_router, prefix="/commerce")

    # Admin routes (order status / fulfillment)
    app.include_router(admin_orders_router, prefix="/admin/commerce")

    return app


app = create_app()
