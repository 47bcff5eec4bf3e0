import logging

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool
from sqlmodel import SQLModel, create_engine

logger = logging.getLogger("blobstore.db")


def build_engine(url: str, connect_args: dict | None = None, timeout: float | None = None) -> Engine:
    """Create a pooled engine for the file table.

    SQLite gets a busy timeout so concurrent writers wait on the database lock
    instead of failing straight away.
    """
    args = dict(connect_args or {})
    if timeout is not None and url.startswith("sqlite"):
        args.setdefault("timeout", timeout)
    return create_engine(
        url,
        connect_args=args,
        poolclass=QueuePool,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,  # Verify connections before use
        pool_recycle=3600,   # Recycle connections after 1 hour
        echo=False,
    )


def init_db(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)
    logger.info("event=schema_ready url=%s", engine.url.render_as_string(hide_password=True))


def ensure_connection(engine: Engine) -> bool:
    """
    Verify that the database connection is alive.
    Used by the health endpoint.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
