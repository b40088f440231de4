from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stayinbox.api.errors import register_exception_handlers
from stayinbox.api.v1.api import api_router
from stayinbox.api.v1.auth_msgraph import router as auth_msgraph_router
from stayinbox.core.config import get_settings
from stayinbox.db.session import init_db
from stayinbox.services.scheduler import shutdown_scheduler, start_scheduler

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: periodic mailbox sync (only when SYNC_INTERVAL_SECONDS > 0)
    Shutdown: stop the scheduler
    """
    start_scheduler(interval_seconds=get_settings().SYNC_INTERVAL_SECONDS)
    yield
    shutdown_scheduler()


def create_app(*, create_tables: bool = True) -> FastAPI:
    app = FastAPI(
        title="StayInbox Backend",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if create_tables:
        init_db()

    register_exception_handlers(app)

    # v1 REST API
    app.include_router(api_router, prefix="/api/v1")

    # OAuth (redirect URI registered without the /api prefix)
    app.include_router(auth_msgraph_router)

    return app


app = create_app()
