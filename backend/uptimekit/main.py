"""Main FastAPI application - hosts the monitoring scheduler."""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from .config import settings
from .database import init_db, close_db
from .routers import status_router
from .routers.status import get_scheduler
from .schemas.status import HealthResponse
from .services.scheduler import SchedulerService, scheduler_service

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting UptimeKit monitoring agent")

    await init_db()
    logger.info("Database initialized")

    # Monitor loops are rebuilt from the stored monitors by the first reconciliation
    scheduler_service.start()

    yield

    # Shutdown: cancel every monitor loop before closing the database
    scheduler_service.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="UptimeKit",
        description="Monitor your services - HTTP, ICMP, DNS, and SSL checks",
        version="1.2.20",
        lifespan=lifespan,
    )

    app.include_router(status_router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check(scheduler: SchedulerService = Depends(get_scheduler)):
        return HealthResponse(
            status="healthy",
            scheduler_running=scheduler.is_running,
            active_monitors=scheduler.active_count,
        )

    return app


# Create the application instance
app = create_app()


def run():
    """Serve the agent with uvicorn (console entry point)."""
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=settings.web_port)


if __name__ == "__main__":
    run()
