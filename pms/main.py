import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from pms.api.dependencies import Container, build_container
from pms.api.errors import register_exception_handlers
from pms.api.routers.amendments import router as amendments_router
from pms.api.routers.health import router as health_router
from pms.api.routers.inventory import router as inventory_router
from pms.api.routers.reservations import router as reservations_router
from pms.api.routers.worker import router as worker_router
from pms.config import Settings, get_settings
from pms.infrastructure.db.engine import create_all

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, container: Container | None = None) -> FastAPI:
    settings = settings or get_settings()
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if container.engine is not None:
            # Crea las tablas (para dev/demo)
            await create_all(container.engine)
        await container.workflow.start()
        await container.sync_worker.start()
        logger.info("Hotel PMS core started", extra={"in_memory": settings.use_in_memory})
        yield
        await container.sync_worker.stop()
        await container.workflow.stop()
        if container.engine is not None:
            await container.engine.dispose()
        logger.info("Hotel PMS core stopped")

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.container = container

    register_exception_handlers(app)
    app.include_router(health_router, tags=["Health"])
    app.include_router(reservations_router, prefix="/api/v1", tags=["Reservations"])
    app.include_router(amendments_router, prefix="/api/v1", tags=["Amendments"])
    app.include_router(inventory_router, prefix="/api/v1", tags=["Inventory"])
    app.include_router(worker_router, prefix="/api/v1", tags=["Worker"])
    return app


def _configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


_configure_logging()
app = create_app()
