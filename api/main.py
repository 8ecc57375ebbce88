from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from core import db
from core.log import setup_logging
from core.settings import load_settings
from ingestion import router as ingestion_router
from ingestion import service as sync_service
from nodes import repository as node_repository
from nodes import router as nodes_router
from nodes import service as node_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Missing DATABASE_URL or an unreachable DB aborts startup here.
    settings = load_settings()
    setup_logging(settings.log_level)

    await db.init_pool(settings.database_url)
    sync_task = None
    try:
        await node_repository.ensure_table()

        if settings.export_on_startup:
            await node_service.print_export()

        if settings.sync_enabled:
            sync_task = sync_service.start_background_sync(settings)
        else:
            logger.info("sync_disabled")

        app.state.settings = settings
        app.state.sync_task = sync_task
        yield
    finally:
        await sync_service.stop_background_sync(sync_task)
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

app.include_router(nodes_router.router, tags=["nodes"])
app.include_router(ingestion_router.router, tags=["sync"])
