from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from reviewhub.config.settings import settings
from reviewhub.database.connection import close_mongo_connection, connect_to_mongo, get_database
from reviewhub.routers.chat import router as chat_router
from reviewhub.routers.devices import router as devices_router
from reviewhub.routers.notifications import router as notifications_router
from reviewhub.routers.presence import router as presence_router
from reviewhub.routers.realtime import router as realtime_router
from reviewhub.services.container import RealtimeContext, ServiceContainer
from reviewhub.utils.errors import setup_error_handlers
from reviewhub.utils.logging import configure_logging, get_logger

logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    db = await connect_to_mongo()
    realtime = RealtimeContext.from_settings(settings)
    app.state.realtime = realtime
    await ServiceContainer(db, realtime).ensure_indexes()
    realtime.queue.start()
    logger.info(f"{settings.NAME} {settings.VERSION} started ({settings.ENVIRONMENT})")
    try:
        yield
    finally:
        await realtime.shutdown()
        await close_mongo_connection()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.NAME, version=settings.VERSION, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_error_handlers(app)

    app.include_router(chat_router, prefix=settings.API_PREFIX)
    app.include_router(notifications_router, prefix=settings.API_PREFIX)
    app.include_router(presence_router, prefix=settings.API_PREFIX)
    app.include_router(devices_router, prefix=settings.API_PREFIX)
    app.include_router(realtime_router, prefix=settings.WEB_SOCKET_PREFIX)

    @app.get("/")
    async def root():
        db = get_database()
        collections = await db.list_collection_names()
        return {"message": "Connected to MongoDB!", "collections": collections}

    return app


app = create_app()
