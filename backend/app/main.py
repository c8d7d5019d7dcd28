"""FastAPI Application Entry Point.

Run with:
  uvicorn app.main:create_app --factory
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import Settings, get_settings
from app.core.errors import register_error_handlers
from app.db.database import Database
from app.api.v1.endpoints import auth, cases, documents, eligibility, notifications
from app.services.activity_service import ActivityRecorder
from app.services.event_dispatcher import EventDispatcher
from app.services.file_storage import get_storage_backend
from app.services.notification_service import NotificationDispatcher
from app.services.rq_queue import JobQueues

logger = logging.getLogger(__name__)


def init_app_state(application: FastAPI, settings: Settings) -> None:
    """Build the per-app service graph and hang it on ``app.state``."""
    database = Database(settings.DATABASE_URL, echo=settings.DEBUG)
    queues = JobQueues(settings) if settings.RQ_ASYNC_ENABLED else None

    application.state.settings = settings
    application.state.database = database
    application.state.storage = get_storage_backend(settings)
    application.state.queues = queues
    application.state.dispatcher = EventDispatcher(
        database,
        settings,
        recorder=ActivityRecorder(database),
        notifier=NotificationDispatcher(database, settings, queues),
    )


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Startup and shutdown events."""
    settings: Settings = application.state.settings
    database: Database = application.state.database

    if settings.DB_CREATE_ALL_ON_STARTUP:
        await database.create_all()

    dispatcher: EventDispatcher = application.state.dispatcher
    await dispatcher.start()
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)

    yield

    await dispatcher.stop()
    await database.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    init_app_state(application, settings)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(application)

    # ─── Route Registration ───────────────────────────────────────
    # Each router already defines its own prefix (e.g. /auth, /cases)
    # so we only add the API version prefix here.
    application.include_router(auth.router,          prefix=settings.API_PREFIX, tags=["Auth"])
    application.include_router(cases.router,         prefix=settings.API_PREFIX, tags=["Cases"])
    application.include_router(documents.router,     prefix=settings.API_PREFIX, tags=["Documents"])
    application.include_router(eligibility.router,   prefix=settings.API_PREFIX, tags=["Eligibility"])
    application.include_router(notifications.router, prefix=settings.API_PREFIX, tags=["Notifications"])

    @application.get("/health")
    async def health():
        return {"status": "ok", "version": settings.APP_VERSION}

    return application
