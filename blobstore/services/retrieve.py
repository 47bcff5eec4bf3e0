from __future__ import annotations

import logging

from blobstore.core.exceptions import NotFoundError, ValidationError
from blobstore.core.metrics import MetricsStore
from blobstore.hashing import is_content_address
from blobstore.models import File
from blobstore.services.backend import call_store
from blobstore.storage import FileStore

logger = logging.getLogger("blobstore")


class RetrievalGateway:
    """Read-only access to stored files by content address."""

    def __init__(
        self,
        store: FileStore,
        *,
        timeout: float | None = None,
        metrics: MetricsStore | None = None,
    ) -> None:
        self.store = store
        self.timeout = timeout
        self.metrics = metrics

    async def fetch(self, file_hash: str | None) -> File:
        if not file_hash:
            raise ValidationError("hash must be provided")
        file_hash = file_hash.lower()
        if not is_content_address(file_hash):
            raise ValidationError(f"invalid hash: {file_hash}")

        stored = await call_store(self.store.lookup, file_hash, timeout=self.timeout)
        if stored is None:
            raise NotFoundError("no file exists with that hash")

        if self.metrics is not None:
            self.metrics.record_download()
        logger.info("event=file_served hash=%s size_bytes=%s", stored.hash, len(stored.data))
        return stored
