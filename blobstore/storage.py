"""Deduplicating file stores.

Every store exposes the same two operations:

``lookup(file_hash)``
    Return the stored ``File`` or ``None`` when nothing is stored under that
    hash. Absence is not an error.

``insert_if_absent(file_hash, mimetype, creator, data)``
    Store the file unless one already exists under ``file_hash``. Returns
    ``(file, created)`` where ``file`` is whatever is persisted under the hash.
    The conditional insert is a single atomic step; concurrent callers with the
    same hash end up with one stored row and all observe the winner.

Backend failures are raised as ``StorageError``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol, Tuple

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from blobstore.core.exceptions import StorageError
from blobstore.db import build_engine, ensure_connection, init_db
from blobstore.models import File

logger = logging.getLogger("blobstore.storage")

MEMORY_URL = "memory://"


class FileStore(Protocol):
    def lookup(self, file_hash: str) -> Optional[File]:
        ...

    def insert_if_absent(
        self, file_hash: str, mimetype: str, creator: str, data: bytes
    ) -> Tuple[File, bool]:
        ...

    def totals(self) -> Dict[str, int]:
        ...

    def ping(self) -> bool:
        ...


class SQLFileStore:
    """File store backed by the ``file`` table.

    Uniqueness comes from the primary key on ``hash``: the insert runs in its
    own transaction and a constraint violation means another writer got there
    first, so the existing row is returned instead.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def lookup(self, file_hash: str) -> Optional[File]:
        try:
            with Session(self.engine) as session:
                return session.get(File, file_hash)
        except SQLAlchemyError as exc:
            raise StorageError(f"get file: {exc}") from exc

    def insert_if_absent(
        self, file_hash: str, mimetype: str, creator: str, data: bytes
    ) -> Tuple[File, bool]:
        record = File(
            hash=file_hash,
            mimetype=mimetype,
            created_by=creator,
            created_at=datetime.now(timezone.utc),
            data=data,
        )
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                session.add(record)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    existing = session.get(File, file_hash)
                    if existing is None:
                        raise StorageError(
                            f"insert file: conflict on {file_hash} but no stored row found"
                        )
                    logger.info("event=insert_conflict hash=%s", file_hash)
                    return existing, False
                return record, True
        except SQLAlchemyError as exc:
            raise StorageError(f"insert file: {exc}") from exc

    def totals(self) -> Dict[str, int]:
        try:
            with Session(self.engine) as session:
                total_files = session.exec(select(func.count(File.hash))).one()
                total_bytes = session.exec(
                    select(func.coalesce(func.sum(func.length(File.data)), 0))
                ).one()
        except SQLAlchemyError as exc:
            raise StorageError(f"count files: {exc}") from exc

        return {
            "total_files": int(total_files or 0),
            "total_bytes": int(total_bytes or 0),
        }

    def ping(self) -> bool:
        return ensure_connection(self.engine)


class MemoryFileStore:
    """In-process store for tests and throwaway deployments."""

    def __init__(self) -> None:
        self._files: Dict[str, File] = {}
        self._lock = threading.Lock()

    def lookup(self, file_hash: str) -> Optional[File]:
        with self._lock:
            return self._files.get(file_hash)

    def insert_if_absent(
        self, file_hash: str, mimetype: str, creator: str, data: bytes
    ) -> Tuple[File, bool]:
        candidate = File(
            hash=file_hash,
            mimetype=mimetype,
            created_by=creator,
            created_at=datetime.now(timezone.utc),
            data=bytes(data),
        )
        with self._lock:
            stored = self._files.setdefault(file_hash, candidate)
        return stored, stored is candidate

    def totals(self) -> Dict[str, int]:
        with self._lock:
            files = list(self._files.values())
        return {
            "total_files": len(files),
            "total_bytes": sum(len(f.data) for f in files),
        }

    def ping(self) -> bool:
        return True


def create_store(url: str, connect_args: dict | None = None, timeout: float | None = None) -> FileStore:
    if url.startswith(MEMORY_URL):
        logger.info("event=store_selected backend=memory")
        return MemoryFileStore()
    engine = build_engine(url, connect_args=connect_args, timeout=timeout)
    init_db(engine)
    logger.info("event=store_selected backend=%s", engine.dialect.name)
    return SQLFileStore(engine)
