from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Collection
from dataclasses import dataclass

from blobstore.core.metrics import MetricsStore
from blobstore.hashing import content_address
from blobstore.reader import check_content_type, read_bounded
from blobstore.services.backend import call_store
from blobstore.storage import FileStore

logger = logging.getLogger("blobstore")


@dataclass(frozen=True)
class UploadResult:
    hash: str
    created: bool
    size_bytes: int


class IngestionGateway:
    """The only writer: validates, addresses and conditionally stores uploads."""

    def __init__(
        self,
        store: FileStore,
        *,
        max_bytes: int,
        accepted_types: Collection[str],
        timeout: float | None = None,
        metrics: MetricsStore | None = None,
    ) -> None:
        self.store = store
        self.max_bytes = max_bytes
        self.accepted_types = accepted_types
        self.timeout = timeout
        self.metrics = metrics

    async def upload(
        self,
        content_type: str | None,
        chunks: AsyncIterator[bytes],
        creator: str,
        declared_length: int | None = None,
    ) -> UploadResult:
        mimetype = check_content_type(content_type, self.accepted_types)
        data = await read_bounded(chunks, self.max_bytes, declared_length)
        file_hash = content_address(data)

        stored, created = await call_store(
            self.store.insert_if_absent,
            file_hash,
            mimetype,
            creator,
            data,
            timeout=self.timeout,
        )

        if self.metrics is not None:
            self.metrics.record_upload(len(data), created)
        logger.info(
            "event=upload_success hash=%s created=%s size_bytes=%s content_type=%s created_by=%s",
            stored.hash,
            created,
            len(data),
            mimetype,
            creator,
        )
        return UploadResult(hash=stored.hash, created=created, size_bytes=len(data))
