"""
Private Shop API - Main Application.

FastAPI application exposing the catalog, private shops, order reservation,
payment confirmation and anonymous vouches. The runtime (engine, timers and
event dispatcher) is built on startup and stopped on shutdown.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from config.settings import Settings
from services.runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build (when not injected) and start the runtime; stop it on shutdown."""
    settings: Settings = app.state.settings
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if app.state.runtime is None:
        app.state.runtime = build_runtime(settings)
    runtime: Runtime = app.state.runtime

    if not settings.payment_webhook_secret:
        logger.warning("PAYMENT_WEBHOOK_SECRET is not set; payment confirmations are unauthenticated")

    await runtime.start()
    try:
        yield
    finally:
        await runtime.stop()


def create_app(settings: Optional[Settings] = None, runtime: Optional[Runtime] = None) -> FastAPI:
    if settings is None:
        settings = runtime.settings if runtime is not None else Settings.from_env()

    app = FastAPI(
        title="Private Shop API",
        description="Per-buyer private shops with time-boxed stock reservations",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.runtime = runtime

    # TODO: Restrict origins once the storefront host is fixed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    def health_check():
        """
        Health check endpoint.

        Returns the API status and version.
        """
        current = app.state.runtime
        return {
            "status": "healthy",
            "version": __version__,
            "service": "private-shop-api",
            "dispatcher_running": bool(current and current.dispatcher.running),
        }

    @app.get("/", tags=["Root"])
    def root():
        return {
            "message": "Private Shop API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health"
        }

    from api.routers import catalog, orders, payments, vouches

    app.include_router(catalog.router, prefix="/api/v1", tags=["Catalog"])
    app.include_router(orders.router, prefix="/api/v1", tags=["Orders"])
    app.include_router(payments.router, prefix="/api/v1", tags=["Payments"])
    app.include_router(vouches.router, prefix="/api/v1", tags=["Vouches"])

    return app


app = create_app()
