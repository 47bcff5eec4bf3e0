"""Bounded request body reading.

The whole payload is held in memory, so the size ceiling doubles as the
per-request memory bound.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Collection

from starlette.requests import ClientDisconnect

from blobstore.core.exceptions import PayloadTooLarge, ReadError, UnsupportedMediaType

logger = logging.getLogger("blobstore.reader")


def normalize_content_type(content_type: str | None) -> str:
    return (content_type or "").strip().lower()


def check_content_type(content_type: str | None, accepted: Collection[str]) -> str:
    """Return the content type as declared, or raise ``UnsupportedMediaType``.

    Matching against ``accepted`` ignores case and surrounding whitespace; the
    returned value is the client's own, so it can be stored verbatim.
    """
    if normalize_content_type(content_type) not in accepted:
        raise UnsupportedMediaType(f"unsupported content type: {content_type or ''}")
    return content_type


async def read_bounded(
    chunks: AsyncIterator[bytes],
    limit_bytes: int,
    declared_length: int | None = None,
) -> bytes:
    if declared_length is not None and declared_length > limit_bytes:
        raise PayloadTooLarge(limit_bytes)

    buffer = bytearray()
    try:
        async for chunk in chunks:
            if len(buffer) + len(chunk) > limit_bytes:
                logger.warning(
                    "event=upload_rejected reason=max_size read_bytes=%s limit_bytes=%s",
                    len(buffer) + len(chunk),
                    limit_bytes,
                )
                raise PayloadTooLarge(limit_bytes)
            buffer.extend(chunk)
    except ClientDisconnect as exc:
        raise ReadError("read file: client disconnected") from exc
    except OSError as exc:
        raise ReadError(f"read file: {exc}") from exc

    if declared_length is not None and len(buffer) != declared_length:
        raise ReadError(
            f"read file: expected {declared_length} bytes, received {len(buffer)}"
        )
    return bytes(buffer)


def parse_content_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError as exc:
        raise ReadError(f"read file: invalid content length {value!r}") from exc
    if length < 0:
        raise ReadError(f"read file: invalid content length {value!r}")
    return length
