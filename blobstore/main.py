import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blobstore.api.routes import router
from blobstore.config import CORS_ORIGINS, DB_CONNECT_ARGS, STORAGE_TIMEOUT_SECONDS, STORAGE_URL
from blobstore.core.exceptions import register_exception_handlers
from blobstore.storage import FileStore, create_store

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("blobstore")


def create_app(store: FileStore | None = None) -> FastAPI:
    app = FastAPI(title="Blobstore API", version="1.0.0")

    origins = [origin.strip() for origin in CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if store is None:
        store = create_store(
            STORAGE_URL, connect_args=DB_CONNECT_ARGS, timeout=STORAGE_TIMEOUT_SECONDS
        )
    app.state.store = store
    logger.info("event=app_ready store=%s", type(store).__name__)

    app.include_router(router)
    register_exception_handlers(app)
    return app


app = create_app()
