"""FastAPI application factory."""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from marketplace.config import Settings, get_settings
from marketplace.db.engine import get_engine, init_db
from marketplace.api.routes import admin, leads, listings, outbox, sync as sync_routes


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build and return the FastAPI app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables and run migrations on startup (idempotent)
        init_db(get_engine())
        # Admin overrides are read once and live on app.state for the process
        app.state.admin_overrides = (settings or get_settings()).admin_overrides
        yield

    app = FastAPI(
        title="Marketplace Sync API",
        description="Offline-first listings cache and outbound lead queue",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(listings.router, prefix="/listings", tags=["listings"])
    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])
    app.include_router(outbox.router, prefix="/outbox", tags=["outbox"])
    app.include_router(leads.router, prefix="/leads", tags=["leads"])
    app.include_router(admin.router, prefix="/admin", tags=["admin"])

    return app


# Module-level app instance for uvicorn
app = create_app()
