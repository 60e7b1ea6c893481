"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .database import init_db, close_db
from .routers import (
    backup_alerts_router,
    backup_monitoring_router,
    cron_router,
    events_router,
    hosts_router,
    incidents_router,
    servers_router,
    status_page_router,
    status_router,
)
from .services.scheduler import scheduler_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting FleetStatus")

    await init_db()
    logger.info("Database initialized")

    if settings.scheduler_enabled:
        scheduler_service.start()
    else:
        logger.info("In-process scheduler disabled; relying on /api/cron/backup-check")

    yield

    scheduler_service.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="FleetStatus",
        description="Server inventory, backup freshness monitoring, and a public status page",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.app_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(cron_router)
    app.include_router(backup_monitoring_router)
    app.include_router(backup_alerts_router)
    app.include_router(servers_router)
    app.include_router(hosts_router)
    app.include_router(status_router)
    app.include_router(status_page_router)
    app.include_router(incidents_router)
    app.include_router(events_router)

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "scheduler": settings.scheduler_enabled,
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
